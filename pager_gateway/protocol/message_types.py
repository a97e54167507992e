"""
Wire Types - Hook bridge, pairing material and operator client messages.

JSON on the wire uses camelCase (the operator client and hook launchers
were written against it); Python code uses snake_case field names. Every
model accepts both (``populate_by_name``) and serialises with aliases via
``to_wire()``.

Client → gateway (WebSocket /ws):
    {"type": "auth", "code": "123456"}
    {"type": "approve", "requestId": "..."}
    {"type": "deny", "requestId": "...", "reason": "..."}
    {"type": "ping", "timestamp": "..."}

Gateway → client (WebSocket /ws):
    auth_ok, error, pong, permission_request, approval_resolved,
    terminal_frame, terminal_snapshot, session_ended, hook_event
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..result import Error, Ok, Result


class _WireModel(BaseModel):
    model_config = {"populate_by_name": True}

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================
# Hook Bridge
# ============================================================


class HookEventType(str, Enum):
    """Normalized hook event kinds."""

    PERMISSION_REQUEST = "permission_request"
    TOOL_COMPLETE = "tool_complete"
    NOTIFICATION = "notification"
    STOP = "stop"


class HookEvent(_WireModel):
    """A hook payload after normalization (see hooks/ingestion.py)."""

    type: HookEventType
    agent: str = "claude"
    request_id: str | None = Field(default=None, alias="requestId")
    session_id: str = Field(alias="sessionId")
    tool_name: str | None = Field(default=None, alias="toolName")
    tool_input: dict[str, Any] = Field(default_factory=dict, alias="toolInput")
    tool_output: str | None = Field(default=None, alias="toolOutput")
    message: str | None = None
    cwd: str | None = None


class RiskLevel(str, Enum):
    """How much damage a tool call can do if approved blindly."""

    SAFE = "safe"
    MODERATE = "moderate"
    DANGEROUS = "dangerous"


class DiffHunk(_WireModel):
    old_start: int = Field(alias="oldStart")
    old_lines: int = Field(alias="oldLines")
    new_start: int = Field(alias="newStart")
    new_lines: int = Field(alias="newLines")
    lines: list[str]  # prefixed with " ", "-" or "+"


class DiffPayload(_WireModel):
    """Preview of a Write/Edit, attached to its permission request."""

    file_path: str = Field(alias="filePath")
    hunks: list[DiffHunk] = Field(default_factory=list)
    additions: int = 0
    deletions: int = 0
    is_binary: bool = Field(default=False, alias="isBinary")
    is_truncated: bool = Field(default=False, alias="isTruncated")


class HookResponse(_WireModel):
    """Reply to a blocked hook. exit_code is what the launcher exits with."""

    blocked: bool
    reason: str | None = None
    exit_code: int = Field(alias="exitCode")


# ============================================================
# Pairing
# ============================================================


class PairingPayload(_WireModel):
    """QR payload for pairing over the LAN."""

    gateway_id: str = Field(alias="gatewayId")
    public_key: str = Field(alias="publicKey")  # base64url raw Ed25519 bytes
    totp_secret: str = Field(alias="totpSecret")
    host: str
    port: int

    def to_qr_text(self) -> str:
        return self.model_dump_json(by_alias=True)


class RelayPairingPayload(_WireModel):
    """QR payload for pairing through the relay (room instead of host/port)."""

    gateway_id: str = Field(alias="gatewayId")
    gateway_public_key: str = Field(alias="gatewayPublicKey")
    totp_secret: str = Field(alias="totpSecret")
    relay_url: str = Field(alias="relayUrl")
    room_id: str = Field(alias="roomId")
    room_secret: str = Field(alias="roomSecret")

    def to_qr_text(self) -> str:
        return self.model_dump_json(by_alias=True)


class PairRequest(_WireModel):
    code: str


class PairResponse(_WireModel):
    token: str


# ============================================================
# Operator Client Actions
# ============================================================


class DecisionRequest(_WireModel):
    """Body of POST /api/approve and /api/deny."""

    request_id: str = Field(alias="requestId")
    reason: str | None = None


class AuthAction(_WireModel):
    type: Literal["auth"]
    code: str


class ApproveAction(_WireModel):
    type: Literal["approve"]
    request_id: str = Field(alias="requestId")


class DenyAction(_WireModel):
    type: Literal["deny"]
    request_id: str = Field(alias="requestId")
    reason: str | None = None


class PingAction(_WireModel):
    type: Literal["ping"]
    timestamp: str | int | float | None = None


ClientAction = Annotated[
    AuthAction | ApproveAction | DenyAction | PingAction,
    Field(discriminator="type"),
]

_client_action_adapter = TypeAdapter(ClientAction)


def parse_client_action(data: Any) -> Result[ClientAction, str]:
    """
    Validate a decoded WebSocket message from an operator client.

    Returns:
        Ok(action) on success, Error(message) if the message is malformed
    """
    if not isinstance(data, dict):
        return Error("Message must be a JSON object")
    try:
        return Ok(_client_action_adapter.validate_python(data))
    except ValidationError as e:
        return Error(f"Invalid {data.get('type', 'unknown')} message: {e.error_count()} error(s)")
