"""
Gateway Configuration

Settings are resolved in three layers, later layers winning:

    1. Defaults (see constants.py)
    2. Environment variables (optionally loaded from a dotenv file)
    3. Keyword overrides passed to load_config()

Environment Variables:
    GATEWAY_BIND_HOST          Bind address for the HTTP/WebSocket server
    GATEWAY_WS_PORT            Port for operator clients
    GATEWAY_APPROVAL_TIMEOUT   Approval timeout in seconds
    GATEWAY_AUTO_APPROVE_SAFE  "1"/"true" to auto-approve tool calls classified safe
    GATEWAY_ID                 Stable gateway identity shown in pairing material
    GATEWAY_RELAY_ENABLED      "1"/"true" to pair through the relay
    GATEWAY_RELAY_URL          Relay WebSocket URL
    GATEWAY_RELAY_ROOM_ID      Relay room id
    GATEWAY_RELAY_ROOM_SECRET  Relay room secret
    BRIDGE_PORT                Hook HTTP port (hook launcher compatibility)
    BRIDGE_SECRET              Hook auth token (hook launcher compatibility)
"""

import os
import uuid
from typing import Any

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field

from .constants import (
    APPROVAL_TIMEOUT_SECONDS,
    DEFAULT_BIND_HOST,
    DEFAULT_HOOK_HTTP_PORT,
    DEFAULT_RELAY_URL,
    DEFAULT_WS_PORT,
    FRAME_INTERVAL_SECONDS,
    MAX_CLIENTS,
    MAX_PENDING_PER_SESSION,
    SCROLLBACK_LINES,
    TOTP_MAX_ATTEMPTS,
    TOTP_WINDOW_SECONDS,
)
from .security.auth import generate_token


_TRUTHY = {"1", "true", "yes", "on"}

# env var -> (config field, is_bool)
_ENV_FIELDS: dict[str, tuple[str, bool]] = {
    "BRIDGE_PORT": ("hook_http_port", False),
    "BRIDGE_SECRET": ("hook_token", False),
    "GATEWAY_BIND_HOST": ("bind_host", False),
    "GATEWAY_WS_PORT": ("ws_port", False),
    "GATEWAY_APPROVAL_TIMEOUT": ("approval_timeout_seconds", False),
    "GATEWAY_AUTO_APPROVE_SAFE": ("auto_approve_safe", True),
    "GATEWAY_ID": ("gateway_id", False),
    "GATEWAY_RELAY_ENABLED": ("relay_enabled", True),
    "GATEWAY_RELAY_URL": ("relay_url", False),
    "GATEWAY_RELAY_ROOM_ID": ("relay_room_id", False),
    "GATEWAY_RELAY_ROOM_SECRET": ("relay_room_secret", False),
}


class GatewayConfig(BaseModel):
    """Runtime settings for one gateway instance."""

    gateway_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    bind_host: str = DEFAULT_BIND_HOST
    hook_http_port: int = Field(default=DEFAULT_HOOK_HTTP_PORT, gt=0, lt=65536)
    ws_port: int = Field(default=DEFAULT_WS_PORT, gt=0, lt=65536)
    hook_token: str = ""

    approval_timeout_seconds: float = Field(default=APPROVAL_TIMEOUT_SECONDS, gt=0)
    auto_approve_safe: bool = False
    max_pending_per_session: int = Field(default=MAX_PENDING_PER_SESSION, gt=0)

    totp_max_attempts: int = Field(default=TOTP_MAX_ATTEMPTS, gt=0)
    totp_window_seconds: float = Field(default=TOTP_WINDOW_SECONDS, gt=0)

    frame_interval_seconds: float = Field(default=FRAME_INTERVAL_SECONDS, gt=0)
    scrollback_lines: int = Field(default=SCROLLBACK_LINES, gt=0)
    max_clients: int = Field(default=MAX_CLIENTS, gt=0)

    relay_enabled: bool = False
    relay_url: str = DEFAULT_RELAY_URL
    relay_room_id: str = ""
    relay_room_secret: str = ""


def _read_env() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_name, (field, is_bool) in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        values[field] = raw.strip().lower() in _TRUTHY if is_bool else raw
    return values


def load_config(env_file: str | None = ".env.local", **overrides: Any) -> GatewayConfig:
    """
    Build a GatewayConfig from defaults, environment and overrides.

    Args:
        env_file: dotenv file to load first (None to skip; a missing file is ignored)
        **overrides: Field values that win over everything else

    Returns:
        Validated GatewayConfig

    Raises:
        pydantic.ValidationError: If any value is invalid
    """
    if env_file:
        load_dotenv(env_file)

    values = _read_env()
    values.update(overrides)
    config = GatewayConfig(**values)

    if not config.hook_token:
        config.hook_token = generate_token()
        logger.warning(
            "[config] No hook token configured (BRIDGE_SECRET); generated one for this process"
        )

    logger.debug(
        f"[config] Loaded: bind={config.bind_host}:{config.ws_port}, "
        f"hook_port={config.hook_http_port}, relay_enabled={config.relay_enabled}"
    )
    return config
