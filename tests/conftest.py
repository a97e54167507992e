"""Pytest configuration and shared fixtures for tests.

This module provides common pytest fixtures that are shared across
unit and integration tests.
"""

import pytest

from pager_gateway import Gateway, GatewayConfig
from tests.utils.clock import FakeClock


HOOK_TOKEN = "test-hook-token"


# ============================================================
# Time
# ============================================================


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced clock aligned to the start of a TOTP step."""
    return FakeClock()


# ============================================================
# Gateway
# ============================================================


@pytest.fixture
def gateway_config() -> GatewayConfig:
    """Config with short timers so tests run fast."""
    return GatewayConfig(
        gateway_id="gw-test",
        hook_token=HOOK_TOKEN,
        approval_timeout_seconds=5.0,
        frame_interval_seconds=0.01,
        totp_max_attempts=5,
        totp_window_seconds=60.0,
        max_clients=3,
    )


@pytest.fixture
def gateway(gateway_config: GatewayConfig, clock: FakeClock) -> Gateway:
    return Gateway(gateway_config, clock=clock)


@pytest.fixture
def hook_headers() -> dict[str, str]:
    return {"X-Gateway-Token": HOOK_TOKEN}


@pytest.fixture
def pre_tool_use_payload() -> dict[str, object]:
    """Flat PreToolUse payload as posted by the Claude hook launcher."""
    return {
        "session_id": "session-1",
        "tool_name": "Bash",
        "tool_input": {"command": "rm -rf build"},
        "cwd": "/work/project",
    }
