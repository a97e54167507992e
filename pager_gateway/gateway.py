"""
Gateway - composition root tying hooks, approvals, pairing and streaming.

Layer Position:
    Hook launchers (HTTP)          Operator clients (WebSocket / REST)
            ↓                                  ↕
    Transport Layer (server.py - routing only)
            ↓ delegates to
    **Gateway (this module)**
            ↓ uses
    ApprovalRegistry · PairingAuthenticator · FrameCoalescer/ScrollbackBuffer

Each connected client owns an outbox queue; the gateway only ever puts
messages on it (never awaits a socket), so timer callbacks such as frame
emission can broadcast synchronously. The server drains each outbox into
its socket.
"""

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from .approvals import (
    ApprovalOutcome,
    ApprovalRegistry,
    DuplicateApprovalError,
    classify_risk,
    extract_target,
    generate_diff,
    summarize_tool,
)
from .config import GatewayConfig
from .constants import MAX_TOKENS_PER_SOURCE, REASON_DUPLICATE_REQUEST
from .protocol.message_types import (
    ApproveAction,
    AuthAction,
    ClientAction,
    DenyAction,
    HookEvent,
    HookEventType,
    PairingPayload,
    PingAction,
    RelayPairingPayload,
    RiskLevel,
)
from .security import (
    KeyPair,
    LanPairingContext,
    PairingAuthenticator,
    RelayPairingContext,
    fingerprint,
    generate_key_pair,
    generate_token,
    secure_compare,
)
from .terminal import FrameCoalescer, ScrollbackBuffer


def _message(message_type: str, **fields: Any) -> dict[str, Any]:
    return {"type": message_type, **fields}


@dataclass
class ClientConnection:
    """One operator client socket."""

    client_id: str
    source: str
    outbox: asyncio.Queue[dict[str, Any]] = field(default_factory=asyncio.Queue)
    authenticated: bool = False
    token: str | None = None

    def send(self, message: dict[str, Any]) -> None:
        self.outbox.put_nowait(message)


@dataclass
class SessionStream:
    """Terminal output state of one agent session."""

    coalescer: FrameCoalescer
    scrollback: ScrollbackBuffer


class Gateway:
    """Owns all in-memory gateway state. Use from a single event loop."""

    def __init__(
        self,
        config: GatewayConfig,
        key_pair: KeyPair | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.key_pair = key_pair or generate_key_pair()
        self.registry = ApprovalRegistry(config.max_pending_per_session)
        self.pairing = PairingAuthenticator(
            config.gateway_id,
            self.key_pair.public_key,
            max_attempts=config.totp_max_attempts,
            window_seconds=config.totp_window_seconds,
            clock=clock,
        )
        self._clients: dict[str, ClientConnection] = {}
        self._tokens: dict[str, str] = {}  # token -> source
        self._streams: dict[str, SessionStream] = {}

        logger.info(
            f"[Gateway] Initialized gateway_id={config.gateway_id}, "
            f"key fingerprint={fingerprint(self.key_pair.public_key)}"
        )

    # ========== Pairing ==========

    def pairing_material(self) -> PairingPayload | RelayPairingPayload:
        """Pairing payload for the configured mode (relay or LAN)."""
        if self.config.relay_enabled:
            return self.pairing.issue_pairing_material(
                RelayPairingContext(
                    relay_url=self.config.relay_url,
                    room_id=self.config.relay_room_id,
                    room_secret=self.config.relay_room_secret,
                )
            )
        return self.pairing.issue_pairing_material(
            LanPairingContext(host=self.config.bind_host, port=self.config.ws_port)
        )

    def authenticate(self, code: str, source: str, replaces: str | None = None) -> str | None:
        """
        Verify a pairing code and issue a client token.

        At most MAX_TOKENS_PER_SOURCE tokens stay valid per source; older ones
        are revoked.

        Args:
            code: TOTP code entered on the client
            source: Client address, the rate-limit and token-cap key
            replaces: Token this one supersedes on success (re-authentication)

        Returns:
            A fresh token, or None if the code was rejected or the source is rate limited
        """
        if not self.pairing.verify_code(code, source):
            return None
        if replaces:
            self._tokens.pop(replaces, None)
        token = generate_token()
        self._tokens[token] = source
        self._evict_excess_tokens(source)
        return token

    def _evict_excess_tokens(self, source: str) -> None:
        # dicts keep insertion order, so the first matches are the oldest
        issued = [token for token, owner in self._tokens.items() if owner == source]
        for token in issued[: max(0, len(issued) - MAX_TOKENS_PER_SOURCE)]:
            del self._tokens[token]
            for client in self._clients.values():
                if client.token == token:
                    client.authenticated = False
                    client.token = None
                    client.send(_message("error", message="Session token expired, re-authenticate"))
            logger.info(f"[Gateway] Evicted oldest token for {source}")

    def is_authorized(self, token: str | None) -> bool:
        if not token:
            return False
        # Compare against every token so timing does not reveal a prefix match
        matched = False
        for issued in self._tokens:
            matched |= secure_compare(token, issued)
        return matched

    def regenerate_secret(self) -> None:
        """Rotate the TOTP secret and revoke every issued client token."""
        self.pairing.regenerate_secret()
        self._tokens.clear()
        for client in self._clients.values():
            if client.authenticated:
                client.authenticated = False
                client.token = None
                client.send(_message("error", message="Pairing secret rotated, re-authenticate"))
        logger.info("[Gateway] Client tokens revoked after secret rotation")

    # ========== Clients ==========

    def connect_client(self, source: str) -> ClientConnection | None:
        """Register a new (unauthenticated) client, or None if at capacity."""
        if len(self._clients) >= self.config.max_clients:
            logger.warning(f"[Gateway] Max clients reached, refusing {source}")
            return None
        client = ClientConnection(client_id=str(uuid.uuid4()), source=source)
        self._clients[client.client_id] = client
        logger.info(f"[Gateway] Client connected: {client.client_id} ({source})")
        return client

    def disconnect_client(self, client_id: str) -> None:
        client = self._clients.pop(client_id, None)
        if client is None:
            return
        if client.token:
            self._tokens.pop(client.token, None)
        logger.info(f"[Gateway] Client disconnected: {client_id}")

    def handle_client_action(self, client: ClientConnection, action: ClientAction) -> None:
        """Apply one validated action from a client socket."""
        match action:
            case PingAction(timestamp=timestamp):
                client.send(_message("pong", timestamp=timestamp))
            case AuthAction(code=code):
                self._authenticate_client(client, code)
            case _ if not client.authenticated:
                client.send(_message("error", message="Not authenticated"))
            case ApproveAction(request_id=request_id):
                if not self.approve(request_id):
                    client.send(_message("error", message=f"Request not pending: {request_id}"))
            case DenyAction(request_id=request_id, reason=reason):
                if not self.deny(request_id, reason):
                    client.send(_message("error", message=f"Request not pending: {request_id}"))

    def _authenticate_client(self, client: ClientConnection, code: str) -> None:
        token = self.authenticate(code, client.source, replaces=client.token)
        if token is None:
            client.send(_message("error", message="Invalid pairing code"))
            return

        client.authenticated = True
        client.token = token
        client.send(_message("auth_ok", clientId=client.client_id, token=token))

        for session_id, stream in self._streams.items():
            if len(stream.scrollback):
                client.send(
                    _message(
                        "terminal_snapshot",
                        sessionId=session_id,
                        data=stream.scrollback.snapshot(),
                    )
                )

    def _broadcast(self, message: dict[str, Any]) -> None:
        for client in self._clients.values():
            if client.authenticated:
                client.send(message)

    # ========== Approvals ==========

    def approve(self, request_id: str) -> bool:
        return self.registry.approve(request_id)

    def deny(self, request_id: str, reason: str | None = None) -> bool:
        return self.registry.deny(request_id, reason)

    async def handle_hook_event(self, event: HookEvent) -> ApprovalOutcome | None:
        """
        Dispatch a normalized hook event.

        Returns:
            The outcome for permission requests (the hook blocks on it), None otherwise
        """
        if event.type is HookEventType.PERMISSION_REQUEST:
            return await self.handle_permission_request(event)

        if event.type is HookEventType.STOP:
            self.end_session(event.session_id)
            return None

        self._broadcast(_message("hook_event", sessionId=event.session_id, event=event.to_wire()))
        return None

    async def handle_permission_request(self, event: HookEvent) -> ApprovalOutcome:
        """Block until the operator decides, the request times out or the session ends."""
        request_id = event.request_id or str(uuid.uuid4())
        tool_name = event.tool_name or "Unknown"

        # Questions are answered in the agent's own UI; the operator only sees them
        if tool_name == "AskUserQuestion":
            self._broadcast(
                _message(
                    "user_question",
                    sessionId=event.session_id,
                    questions=event.tool_input.get("questions", []),
                )
            )
            return ApprovalOutcome.approved()

        risk = classify_risk(tool_name, event.tool_input)
        if self.config.auto_approve_safe and risk is RiskLevel.SAFE:
            logger.info(f"[Gateway] Auto-approved safe tool {tool_name} ({request_id})")
            return ApprovalOutcome.approved()

        try:
            future = self.registry.register(
                request_id, event.session_id, self.config.approval_timeout_seconds
            )
        except DuplicateApprovalError:
            logger.warning(f"[Gateway] Duplicate permission request rejected: {request_id}")
            return ApprovalOutcome.denied(REASON_DUPLICATE_REQUEST)

        if not future.done():
            diff = generate_diff(tool_name, event.tool_input)
            self._broadcast(
                _message(
                    "permission_request",
                    requestId=request_id,
                    sessionId=event.session_id,
                    toolName=tool_name,
                    toolInput=event.tool_input,
                    cwd=event.cwd,
                    riskLevel=risk.value,
                    summary=summarize_tool(tool_name, event.tool_input),
                    target=extract_target(tool_name, event.tool_input),
                    diff=diff.to_wire() if diff else None,
                )
            )

        outcome = await future
        logger.info(
            f"[Gateway] Permission resolved: {tool_name} → "
            f"{'DENIED' if outcome.blocked else 'APPROVED'} ({request_id})"
        )
        self._broadcast(
            _message(
                "approval_resolved",
                requestId=request_id,
                sessionId=event.session_id,
                blocked=outcome.blocked,
                reason=outcome.reason,
            )
        )
        return outcome

    # ========== Terminal streaming ==========

    def feed_output(self, session_id: str, chunk: str) -> None:
        """Feed raw terminal output of a session into its coalescer."""
        stream = self._streams.get(session_id)
        if stream is None:
            stream = SessionStream(
                coalescer=FrameCoalescer(
                    lambda data: self._broadcast(
                        _message("terminal_frame", sessionId=session_id, data=data)
                    ),
                    interval=self.config.frame_interval_seconds,
                ),
                scrollback=ScrollbackBuffer(self.config.scrollback_lines),
            )
            self._streams[session_id] = stream
        stream.scrollback.append(chunk)
        stream.coalescer.push(chunk)

    def end_session(self, session_id: str) -> int:
        """
        Tear down a session: deny its pending approvals and flush its output.

        Returns:
            Number of pending approvals that were cancelled
        """
        cancelled = self.registry.cancel_session(session_id)
        stream = self._streams.pop(session_id, None)
        if stream is not None:
            stream.coalescer.stop()
        self._broadcast(_message("session_ended", sessionId=session_id))
        logger.info(f"[Gateway] Session ended: {session_id} ({cancelled} approval(s) cancelled)")
        return cancelled

    def status(self) -> dict[str, Any]:
        return {
            "gatewayId": self.config.gateway_id,
            "clients": len(self._clients),
            "authenticatedClients": sum(1 for c in self._clients.values() if c.authenticated),
            "pending": self.registry.count(),
            "pendingRequests": [
                {
                    "requestId": entry.request_id,
                    "sessionId": entry.session_id,
                    "createdAt": entry.created_at,
                }
                for entry in self.registry.entries()
            ],
            "sessions": sorted(self._streams),
        }
