"""
Integration tests for the Gateway composition root.

Drives the same paths the server routes do: hook events in, client actions
in, messages out through each client's outbox.
"""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from pager_gateway import Gateway, GatewayConfig
from pager_gateway.constants import (
    MAX_TOKENS_PER_SOURCE,
    REASON_DUPLICATE_REQUEST,
    REASON_SESSION_TERMINATED,
    REASON_TIMED_OUT,
)
from pager_gateway.protocol import (
    ApproveAction,
    AuthAction,
    DenyAction,
    HookEvent,
    HookEventType,
    PingAction,
)
from tests.utils import FakeClock, drain, wait_until


def _permission_event(
    request_id: str = "req-1",
    tool_name: str = "Bash",
    tool_input: dict[str, Any] | None = None,
) -> HookEvent:
    return HookEvent(
        type=HookEventType.PERMISSION_REQUEST,
        request_id=request_id,
        session_id="s1",
        tool_name=tool_name,
        tool_input={"command": "make deploy"} if tool_input is None else tool_input,
    )


def _paired_client(gateway: Gateway, source: str = "10.0.0.2"):
    client = gateway.connect_client(source)
    assert client is not None
    gateway.handle_client_action(
        client, AuthAction(type="auth", code=gateway.pairing.current_code())
    )
    return client


# ============================================================
# Client authentication
# ============================================================


@pytest.mark.asyncio
async def test_auth_with_valid_code_returns_token(gateway: Gateway) -> None:
    # given
    client = gateway.connect_client("10.0.0.2")
    assert client is not None

    # when
    gateway.handle_client_action(
        client, AuthAction(type="auth", code=gateway.pairing.current_code())
    )

    # then
    [message] = drain(client)
    assert message["type"] == "auth_ok"
    assert message["clientId"] == client.client_id
    assert client.authenticated is True
    assert gateway.is_authorized(message["token"])


@pytest.mark.asyncio
async def test_auth_with_invalid_code_keeps_client_unauthenticated(gateway: Gateway) -> None:
    # given
    client = gateway.connect_client("10.0.0.2")
    assert client is not None

    # when
    gateway.handle_client_action(client, AuthAction(type="auth", code="not-a-code"))

    # then
    assert drain(client) == [{"type": "error", "message": "Invalid pairing code"}]
    assert client.authenticated is False


@pytest.mark.asyncio
async def test_unauthenticated_client_cannot_approve(gateway: Gateway) -> None:
    # given
    client = gateway.connect_client("10.0.0.2")
    assert client is not None
    waiter = asyncio.create_task(gateway.handle_permission_request(_permission_event()))
    await wait_until(lambda: gateway.registry.is_pending("req-1"))

    # when
    gateway.handle_client_action(client, ApproveAction(type="approve", request_id="req-1"))

    # then
    assert drain(client) == [{"type": "error", "message": "Not authenticated"}]
    assert gateway.registry.is_pending("req-1")
    gateway.deny("req-1")
    await waiter


@pytest.mark.asyncio
async def test_ping_works_without_authentication(gateway: Gateway) -> None:
    client = gateway.connect_client("10.0.0.2")
    assert client is not None

    gateway.handle_client_action(client, PingAction(type="ping", timestamp="t1"))

    assert drain(client) == [{"type": "pong", "timestamp": "t1"}]


def test_max_clients_is_enforced(gateway: Gateway) -> None:
    # given: gateway_config allows three clients
    for _ in range(3):
        assert gateway.connect_client("10.0.0.2") is not None

    # when
    refused = gateway.connect_client("10.0.0.2")

    # then
    assert refused is None
    assert gateway.status()["clients"] == 3


@pytest.mark.asyncio
async def test_disconnect_revokes_token(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    token = drain(client)[0]["token"]

    # when
    gateway.disconnect_client(client.client_id)

    # then
    assert gateway.is_authorized(token) is False
    assert gateway.status()["clients"] == 0


def test_tokens_per_source_are_capped(clock: FakeClock) -> None:
    # given: enough attempts that the rate limiter stays out of the way
    config = GatewayConfig(gateway_id="gw-test", hook_token="t", totp_max_attempts=20)
    gateway = Gateway(config, clock=clock)
    tokens = [
        gateway.authenticate(gateway.pairing.current_code(), "10.0.0.2")
        for _ in range(MAX_TOKENS_PER_SOURCE + 2)
    ]

    # when
    other_source = gateway.authenticate(gateway.pairing.current_code(), "10.0.0.3")

    # then: the two oldest tokens of the first source were evicted
    assert gateway.is_authorized(tokens[0]) is False
    assert gateway.is_authorized(tokens[1]) is False
    assert all(gateway.is_authorized(token) for token in tokens[2:])
    assert gateway.is_authorized(other_source)


@pytest.mark.asyncio
async def test_evicted_token_deauthenticates_its_client(clock: FakeClock) -> None:
    # given
    config = GatewayConfig(gateway_id="gw-test", hook_token="t", totp_max_attempts=20)
    gateway = Gateway(config, clock=clock)
    client = _paired_client(gateway)
    drain(client)

    # when
    for _ in range(MAX_TOKENS_PER_SOURCE):
        gateway.authenticate(gateway.pairing.current_code(), "10.0.0.2")

    # then
    assert client.authenticated is False
    assert drain(client) == [
        {"type": "error", "message": "Session token expired, re-authenticate"}
    ]


@pytest.mark.asyncio
async def test_regenerate_secret_revokes_every_client(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    token = drain(client)[0]["token"]

    # when
    gateway.regenerate_secret()

    # then
    assert client.authenticated is False
    assert gateway.is_authorized(token) is False
    assert drain(client)[0]["type"] == "error"


# ============================================================
# Approval flow
# ============================================================


@pytest.mark.asyncio
async def test_permission_request_is_broadcast_and_approved(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    drain(client)
    waiter = asyncio.create_task(gateway.handle_permission_request(_permission_event()))
    await wait_until(lambda: gateway.registry.is_pending("req-1"))

    # when
    [request] = drain(client)
    gateway.handle_client_action(client, ApproveAction(type="approve", request_id="req-1"))
    outcome = await waiter

    # then
    assert request["type"] == "permission_request"
    assert request["requestId"] == "req-1"
    assert request["toolName"] == "Bash"
    assert request["toolInput"] == {"command": "make deploy"}
    assert outcome.blocked is False
    assert outcome.exit_code == 0
    [resolved] = drain(client)
    assert resolved == {
        "type": "approval_resolved",
        "requestId": "req-1",
        "sessionId": "s1",
        "blocked": False,
        "reason": None,
    }


@pytest.mark.asyncio
async def test_deny_action_blocks_with_reason(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    waiter = asyncio.create_task(gateway.handle_permission_request(_permission_event()))
    await wait_until(lambda: gateway.registry.is_pending("req-1"))

    # when
    gateway.handle_client_action(
        client, DenyAction(type="deny", request_id="req-1", reason="not on prod")
    )
    outcome = await waiter

    # then
    assert outcome.blocked is True
    assert outcome.reason == "not on prod"
    assert outcome.exit_code == 2


@pytest.mark.asyncio
async def test_status_lists_pending_requests(gateway: Gateway) -> None:
    # given
    waiter = asyncio.create_task(gateway.handle_permission_request(_permission_event()))
    await wait_until(lambda: gateway.registry.is_pending("req-1"))

    # when
    status = gateway.status()

    # then
    assert status["pending"] == 1
    [pending] = status["pendingRequests"]
    assert pending["requestId"] == "req-1"
    assert pending["sessionId"] == "s1"
    assert pending["createdAt"] > 0
    gateway.approve("req-1")
    await waiter


@pytest.mark.asyncio
async def test_approving_unknown_request_reports_error(gateway: Gateway) -> None:
    client = _paired_client(gateway)
    drain(client)

    gateway.handle_client_action(client, ApproveAction(type="approve", request_id="ghost"))

    assert drain(client) == [{"type": "error", "message": "Request not pending: ghost"}]


@pytest.mark.asyncio
async def test_permission_request_times_out(clock: FakeClock) -> None:
    # given
    config = GatewayConfig(gateway_id="gw-test", hook_token="t", approval_timeout_seconds=0.02)
    gateway = Gateway(config, clock=clock)

    # when
    outcome = await asyncio.wait_for(
        gateway.handle_permission_request(_permission_event()), timeout=1.0
    )

    # then
    assert outcome.blocked is True
    assert outcome.reason == REASON_TIMED_OUT


@pytest.mark.asyncio
async def test_safe_tools_are_auto_approved_when_enabled(clock: FakeClock) -> None:
    # given
    config = GatewayConfig(gateway_id="gw-test", hook_token="t", auto_approve_safe=True)
    gateway = Gateway(config, clock=clock)

    # when
    read = await gateway.handle_permission_request(_permission_event("r1", tool_name="Read"))
    status = await gateway.handle_permission_request(
        _permission_event("r2", tool_input={"command": "git status"})
    )
    rm = asyncio.create_task(
        gateway.handle_permission_request(
            _permission_event("r3", tool_input={"command": "rm -rf build"})
        )
    )
    await wait_until(lambda: gateway.registry.is_pending("r3"))

    # then
    assert read.blocked is False
    assert status.blocked is False
    assert gateway.registry.is_pending("r1") is False
    gateway.deny("r3")
    assert (await rm).blocked is True


@pytest.mark.asyncio
async def test_safe_tools_wait_for_operator_when_auto_approve_disabled(gateway: Gateway) -> None:
    # given
    waiter = asyncio.create_task(
        gateway.handle_permission_request(_permission_event(tool_name="Read"))
    )

    # when
    await wait_until(lambda: gateway.registry.is_pending("req-1"))
    gateway.approve("req-1")

    # then
    assert (await waiter).blocked is False


@pytest.mark.asyncio
async def test_permission_request_carries_risk_summary_and_target(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    drain(client)

    # when
    waiter = asyncio.create_task(
        gateway.handle_permission_request(
            _permission_event(tool_input={"command": "rm -rf build"})
        )
    )
    await wait_until(lambda: gateway.registry.is_pending("req-1"))

    # then
    [request] = drain(client)
    assert request["riskLevel"] == "dangerous"
    assert request["summary"] == "rm -rf build"
    assert request["target"] == "rm -rf build"
    assert request["diff"] is None
    gateway.deny("req-1")
    await waiter


@pytest.mark.asyncio
async def test_write_request_carries_diff_preview(gateway: Gateway, tmp_path: Path) -> None:
    # given
    client = _paired_client(gateway)
    drain(client)
    target = tmp_path / "app.py"
    target.write_text("print('a')\n")
    event = _permission_event(
        tool_name="Write", tool_input={"file_path": str(target), "content": "print('b')\n"}
    )

    # when
    waiter = asyncio.create_task(gateway.handle_permission_request(event))
    await wait_until(lambda: gateway.registry.is_pending("req-1"))

    # then
    [request] = drain(client)
    assert request["summary"] == f"Write to {target}"
    assert request["diff"]["filePath"] == str(target)
    assert request["diff"]["additions"] == 1
    assert request["diff"]["deletions"] == 1
    assert request["diff"]["hunks"][0]["lines"] == ["-print('a')", "+print('b')"]
    gateway.approve("req-1")
    await waiter


@pytest.mark.asyncio
async def test_ask_user_question_is_broadcast_and_approved(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    drain(client)
    questions = [{"question": "Which database?", "options": ["sqlite", "postgres"]}]

    # when
    outcome = await gateway.handle_permission_request(
        _permission_event(tool_name="AskUserQuestion", tool_input={"questions": questions})
    )

    # then
    assert outcome.blocked is False
    assert gateway.registry.count() == 0
    assert drain(client) == [{"type": "user_question", "sessionId": "s1", "questions": questions}]


@pytest.mark.asyncio
async def test_duplicate_request_id_is_denied_without_touching_original(gateway: Gateway) -> None:
    # given
    first = asyncio.create_task(gateway.handle_permission_request(_permission_event()))
    await wait_until(lambda: gateway.registry.is_pending("req-1"))

    # when
    duplicate = await gateway.handle_permission_request(_permission_event())

    # then
    assert duplicate.blocked is True
    assert duplicate.reason == REASON_DUPLICATE_REQUEST
    assert duplicate.exit_code == 2
    assert gateway.registry.is_pending("req-1")
    gateway.approve("req-1")
    assert (await first).blocked is False


@pytest.mark.asyncio
async def test_stop_event_ends_session_and_denies_pending(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    waiter = asyncio.create_task(gateway.handle_permission_request(_permission_event()))
    await wait_until(lambda: gateway.registry.is_pending("req-1"))
    drain(client)

    # when
    await gateway.handle_hook_event(HookEvent(type=HookEventType.STOP, session_id="s1"))
    outcome = await waiter

    # then
    assert outcome.reason == REASON_SESSION_TERMINATED
    types = [message["type"] for message in drain(client)]
    assert "session_ended" in types
    assert "approval_resolved" in types


@pytest.mark.asyncio
async def test_notification_is_broadcast_as_hook_event(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    drain(client)

    # when
    result = await gateway.handle_hook_event(
        HookEvent(type=HookEventType.NOTIFICATION, session_id="s1", message="waiting")
    )

    # then
    assert result is None
    [message] = drain(client)
    assert message["type"] == "hook_event"
    assert message["event"]["message"] == "waiting"


# ============================================================
# Terminal streaming
# ============================================================


@pytest.mark.asyncio
async def test_output_is_coalesced_into_frames(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    drain(client)

    # when
    gateway.feed_output("s1", "hello ")
    gateway.feed_output("s1", "world\n")
    await asyncio.sleep(0.05)

    # then
    assert drain(client) == [{"type": "terminal_frame", "sessionId": "s1", "data": "hello world\n"}]


@pytest.mark.asyncio
async def test_new_client_receives_scrollback_snapshot(gateway: Gateway) -> None:
    # given
    gateway.feed_output("s1", "line 1\nline 2")
    await asyncio.sleep(0.05)

    # when
    client = _paired_client(gateway)

    # then
    messages = drain(client)
    assert messages[0]["type"] == "auth_ok"
    assert messages[1] == {"type": "terminal_snapshot", "sessionId": "s1", "data": "line 1\nline 2"}


@pytest.mark.asyncio
async def test_end_session_flushes_pending_output(gateway: Gateway) -> None:
    # given
    client = _paired_client(gateway)
    drain(client)
    gateway.feed_output("s1", "last words")

    # when
    cancelled = gateway.end_session("s1")

    # then
    assert cancelled == 0
    assert drain(client) == [
        {"type": "terminal_frame", "sessionId": "s1", "data": "last words"},
        {"type": "session_ended", "sessionId": "s1"},
    ]
    assert gateway.status()["sessions"] == []
