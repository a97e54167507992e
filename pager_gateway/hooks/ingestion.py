"""
Hook Ingestion

Normalizes raw JSON posted by the agent hook launchers into HookEvent.
The agent segment of /hook/{agent}/{endpoint} selects the normalizer:

    claude   PreToolUse / pre-tool-use     → permission_request (blocks the hook)
             PostToolUse / post-tool-use   → tool_complete
             Notification / notification   → notification
             Stop / stop                   → stop (ends the session)

    codex    BeforeTool / before-tool      → permission_request
             AfterTool / after-tool        → tool_complete
             NotifyAgentTurnComplete /
             notify-agent-turn-complete    → stop

    gemini   BeforeTool / before-tool      → permission_request
             AfterAgent / after-agent      → stop

Claude hooks post a flat payload ({session_id, tool_name, tool_input});
the bridge layer may also send camelCase ids (requestId, sessionId).
Codex nests the tool under ``tool_call`` with JSON-encoded arguments and
names its session ``thread_id``. A permission request without a requestId
gets a fresh uuid4 so ids never collide in the approval registry.
"""

import json
import uuid
from collections.abc import Callable
from typing import Any

from loguru import logger

from ..protocol.message_types import HookEvent, HookEventType
from ..result import Error, Ok, Result


_CLAUDE_ENDPOINTS: dict[str, HookEventType] = {
    "pretooluse": HookEventType.PERMISSION_REQUEST,
    "pre-tool-use": HookEventType.PERMISSION_REQUEST,
    "posttooluse": HookEventType.TOOL_COMPLETE,
    "post-tool-use": HookEventType.TOOL_COMPLETE,
    "notification": HookEventType.NOTIFICATION,
    "stop": HookEventType.STOP,
}

_CODEX_ENDPOINTS: dict[str, HookEventType] = {
    "beforetool": HookEventType.PERMISSION_REQUEST,
    "before-tool": HookEventType.PERMISSION_REQUEST,
    "aftertool": HookEventType.TOOL_COMPLETE,
    "after-tool": HookEventType.TOOL_COMPLETE,
    "notifyagentturncomplete": HookEventType.STOP,
    "notify-agent-turn-complete": HookEventType.STOP,
}

_GEMINI_ENDPOINTS: dict[str, HookEventType] = {
    "beforetool": HookEventType.PERMISSION_REQUEST,
    "before-tool": HookEventType.PERMISSION_REQUEST,
    "afteragent": HookEventType.STOP,
    "after-agent": HookEventType.STOP,
}

_TOOL_EVENTS = (HookEventType.PERMISSION_REQUEST, HookEventType.TOOL_COMPLETE)


def _first_str(data: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _tool_field(data: dict[str, Any], key: str) -> Any:
    # Older launchers nest tool fields under "tool"
    if key in data:
        return data[key]
    nested = data.get("tool")
    if isinstance(nested, dict):
        return nested.get(key)
    return None


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


def _request_id(data: dict[str, Any], event_type: HookEventType) -> str | None:
    request_id = _first_str(data, "requestId", "request_id")
    if event_type is HookEventType.PERMISSION_REQUEST and request_id is None:
        request_id = str(uuid.uuid4())
    return request_id


# ============================================================
# Per-agent normalizers
# ============================================================


def _normalize_claude(
    payload: dict[str, Any], event_type: HookEventType, endpoint: str
) -> Result[HookEvent, str]:
    session_id = _first_str(payload, "sessionId", "session_id")
    if session_id is None:
        return Error("Hook payload is missing session_id")

    tool_name = _first_str(payload, "toolName", "tool_name") or _tool_field(payload, "tool_name")
    if not isinstance(tool_name, str) or not tool_name:
        tool_name = None
    tool_input = payload.get("toolInput") or _tool_field(payload, "tool_input") or {}
    if not isinstance(tool_input, dict):
        return Error("tool_input must be a JSON object")

    if event_type in _TOOL_EVENTS and tool_name is None:
        return Error(f"{endpoint} payload is missing tool_name")

    message = _first_str(payload, "message")
    if event_type is HookEventType.NOTIFICATION and message is None:
        message = json.dumps(payload)

    return Ok(
        HookEvent(
            type=event_type,
            agent="claude",
            request_id=_request_id(payload, event_type),
            session_id=session_id,
            tool_name=tool_name,
            tool_input=tool_input,
            tool_output=_as_text(_tool_field(payload, "tool_output")),
            message=message,
            cwd=_first_str(payload, "cwd", "_cwd"),
        )
    )


def _codex_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("[hooks] Codex tool_call.arguments is not valid JSON, using {}")
            return {}
        if isinstance(decoded, dict):
            return decoded
    return {}


def _normalize_codex(
    payload: dict[str, Any], event_type: HookEventType, endpoint: str
) -> Result[HookEvent, str]:
    session_id = _first_str(payload, "thread_id", "sessionId", "session_id")
    if session_id is None:
        return Error("Hook payload is missing thread_id")

    tool_name: str | None = None
    tool_input: dict[str, Any] = {}
    tool_output: str | None = None
    if event_type in _TOOL_EVENTS:
        tool_call = payload.get("tool_call")
        if not isinstance(tool_call, dict):
            return Error(f"{endpoint} payload is missing tool_call")
        tool_name = _first_str(tool_call, "name") or "Unknown"
        tool_input = _codex_arguments(tool_call.get("arguments"))
        tool_output = _as_text(tool_call.get("output"))

    return Ok(
        HookEvent(
            type=event_type,
            agent="codex",
            request_id=_request_id(payload, event_type),
            session_id=session_id,
            tool_name=tool_name,
            tool_input=tool_input,
            tool_output=tool_output,
            cwd=_first_str(payload, "cwd"),
        )
    )


def _normalize_gemini(
    payload: dict[str, Any], event_type: HookEventType, endpoint: str
) -> Result[HookEvent, str]:
    session_id = _first_str(payload, "session_id", "sessionId")
    if session_id is None:
        return Error("Hook payload is missing session_id")

    tool_name: str | None = None
    tool_input: dict[str, Any] = {}
    if event_type is HookEventType.PERMISSION_REQUEST:
        tool_name = _first_str(payload, "tool_name") or "Unknown"
        raw_input = payload.get("tool_input") or {}
        if not isinstance(raw_input, dict):
            return Error("tool_input must be a JSON object")
        tool_input = raw_input

    return Ok(
        HookEvent(
            type=event_type,
            agent="gemini",
            request_id=_request_id(payload, event_type),
            session_id=session_id,
            tool_name=tool_name,
            tool_input=tool_input,
            cwd=_first_str(payload, "cwd"),
        )
    )


_Normalizer = Callable[[dict[str, Any], HookEventType, str], Result[HookEvent, str]]

_AGENTS: dict[str, tuple[dict[str, HookEventType], _Normalizer]] = {
    "claude": (_CLAUDE_ENDPOINTS, _normalize_claude),
    "codex": (_CODEX_ENDPOINTS, _normalize_codex),
    "gemini": (_GEMINI_ENDPOINTS, _normalize_gemini),
}


def normalize_hook_payload(
    payload: Any, endpoint: str, agent: str = "claude"
) -> Result[HookEvent, str]:
    """
    Turn a raw hook payload into a HookEvent.

    Args:
        payload: Decoded JSON body posted by the hook launcher
        endpoint: Hook name from the URL (e.g. "PreToolUse")
        agent: Agent name from the URL ("claude", "codex" or "gemini")

    Returns:
        Ok(HookEvent), or Error(message) for unknown agents, unknown
        endpoints and bad payloads
    """
    adapter = _AGENTS.get(agent.lower())
    if adapter is None:
        return Error(f"Unknown agent: {agent}")
    endpoints, normalize = adapter

    event_type = endpoints.get(endpoint.lower())
    if event_type is None:
        return Error(f"Unknown hook endpoint: {endpoint}")

    if not isinstance(payload, dict):
        return Error("Hook payload must be a JSON object")

    return normalize(payload, event_type, endpoint)
