"""
Gateway Server with FastAPI

Two ASGI apps share one Gateway:

    Hook app (127.0.0.1:hook_http_port, hook token required)
        POST /hook/{agent}/{endpoint}      hook launchers; PreToolUse blocks
        POST /hook/{endpoint}              same, agent defaults to claude
        POST /notification                 legacy notification endpoint
        POST /api/sessions/{id}/output     terminal output of a session
        POST /api/sessions/{id}/stop       session teardown
        GET  /api/status                   clients, pending approvals, sessions
        GET  /api/pairing                  current pairing payload
        GET  /api/pairing/qr               same payload as QR text (compact JSON)
        POST /api/pairing/regenerate       rotate the TOTP secret

    Client app (bind_host:ws_port)
        GET  /api/health
        POST /api/pair                     TOTP code → client token
        POST /api/approve, /api/deny       client token required
        WS   /ws                           auth, approvals, live frames

The hook app is never exposed beyond localhost: only local hook processes
may block on approvals or feed output.
"""

import asyncio
import json
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse
from loguru import logger
from pydantic import BaseModel

from .approvals import ApprovalOutcome
from .config import load_config
from .constants import (
    HOOK_DISCONNECT_POLL_SECONDS,
    MAX_HOOK_PAYLOAD_BYTES,
    MAX_WS_MESSAGE_BYTES,
    REASON_HOOK_CONNECTION_LOST,
)
from .gateway import Gateway
from .hooks import normalize_hook_payload
from .logging_config import add_file_sink, configure_logging
from .protocol.message_types import (
    DecisionRequest,
    HookEvent,
    HookEventType,
    HookResponse,
    PairRequest,
    PairResponse,
    parse_client_action,
)
from .result import Error, Ok
from .security import secure_compare


class TerminalOutput(BaseModel):
    data: str


def _bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    return authorization.removeprefix("Bearer ").strip() or None


async def _read_json(request: Request) -> Any:
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_HOOK_PAYLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Payload too large")
    body = await request.body()
    if len(body) > MAX_HOOK_PAYLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Payload too large")
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON") from None


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(HOOK_DISCONNECT_POLL_SECONDS)


# ============================================================
# Hook app
# ============================================================


def create_hook_app(gateway: Gateway) -> FastAPI:
    """Build the localhost-only app used by hook launchers."""
    app = FastAPI(title="Pager Gateway Hooks", version="0.1.0")

    async def require_hook_token(
        x_gateway_token: str | None = Header(default=None),
        authorization: str | None = Header(default=None),
    ) -> None:
        token = x_gateway_token or _bearer(authorization)
        if not token or not secure_compare(token, gateway.config.hook_token):
            raise HTTPException(status_code=401, detail="Unauthorized")

    async def ingest(request: Request, agent: str, endpoint: str) -> dict[str, Any]:
        payload = await _read_json(request)

        match normalize_hook_payload(payload, endpoint, agent):
            case Error(message):
                logger.warning(f"[server] Rejected hook payload ({agent}/{endpoint}): {message}")
                raise HTTPException(status_code=400, detail=message)
            case Ok(event) if event.type is not HookEventType.PERMISSION_REQUEST:
                await gateway.handle_hook_event(event)
                return {"ok": True}
            case Ok(event):
                outcome = await _block_on_permission(request, event)

        return HookResponse(
            blocked=outcome.blocked,
            reason=outcome.reason,
            exit_code=outcome.exit_code,
        ).to_wire()

    async def _block_on_permission(request: Request, event: HookEvent) -> ApprovalOutcome:
        decision = asyncio.ensure_future(gateway.handle_permission_request(event))
        watcher = asyncio.ensure_future(_wait_for_disconnect(request))
        try:
            await asyncio.wait({decision, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if not decision.done():
                logger.warning(
                    f"[server] Hook connection lost for {event.tool_name} ({event.request_id})"
                )
                gateway.deny(event.request_id, REASON_HOOK_CONNECTION_LOST)
            return await decision
        finally:
            watcher.cancel()
            if not decision.done():
                decision.cancel()

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/hook/{agent}/{endpoint}", dependencies=[Depends(require_hook_token)])
    async def hook(agent: str, endpoint: str, request: Request):
        return await ingest(request, agent, endpoint)

    @app.post("/hook/{endpoint}", dependencies=[Depends(require_hook_token)])
    async def hook_default_agent(endpoint: str, request: Request):
        return await ingest(request, "claude", endpoint)

    @app.post("/notification", dependencies=[Depends(require_hook_token)])
    async def notification(request: Request):
        return await ingest(request, "claude", "Notification")

    @app.post("/api/sessions/{session_id}/output", dependencies=[Depends(require_hook_token)])
    async def session_output(session_id: str, body: TerminalOutput):
        gateway.feed_output(session_id, body.data)
        return {"ok": True}

    @app.post("/api/sessions/{session_id}/stop", dependencies=[Depends(require_hook_token)])
    async def session_stop(session_id: str):
        cancelled = gateway.end_session(session_id)
        return {"ok": True, "cancelled": cancelled}

    @app.get("/api/status", dependencies=[Depends(require_hook_token)])
    async def status():
        return gateway.status()

    @app.get("/api/pairing", dependencies=[Depends(require_hook_token)])
    async def pairing():
        return gateway.pairing_material().to_wire()

    @app.get(
        "/api/pairing/qr",
        dependencies=[Depends(require_hook_token)],
        response_class=PlainTextResponse,
    )
    async def pairing_qr():
        return gateway.pairing_material().to_qr_text()

    @app.post("/api/pairing/regenerate", dependencies=[Depends(require_hook_token)])
    async def pairing_regenerate():
        gateway.regenerate_secret()
        return gateway.pairing_material().to_wire()

    return app


# ============================================================
# Client app
# ============================================================


def create_client_app(gateway: Gateway) -> FastAPI:
    """Build the app operator clients pair with and control approvals through."""
    app = FastAPI(title="Pager Gateway", version="0.1.0")

    async def require_client_token(
        x_client_token: str | None = Header(default=None),
        authorization: str | None = Header(default=None),
    ) -> None:
        if not gateway.is_authorized(x_client_token or _bearer(authorization)):
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.get("/api/health")
    async def health():
        status = gateway.status()
        return {"status": "ok", "clients": status["clients"], "pending": status["pending"]}

    @app.post("/api/pair")
    async def pair(body: PairRequest, request: Request):
        source = request.client.host if request.client else "unknown"
        token = gateway.authenticate(body.code, source)
        if token is None:
            raise HTTPException(status_code=401, detail="Invalid pairing code")
        return PairResponse(token=token).to_wire()

    @app.post("/api/approve", dependencies=[Depends(require_client_token)])
    async def approve(body: DecisionRequest):
        if not gateway.approve(body.request_id):
            raise HTTPException(status_code=404, detail="Request not pending")
        return {"ok": True}

    @app.post("/api/deny", dependencies=[Depends(require_client_token)])
    async def deny(body: DecisionRequest):
        if not gateway.deny(body.request_id, body.reason):
            raise HTTPException(status_code=404, detail="Request not pending")
        return {"ok": True}

    @app.websocket("/ws")
    async def client_socket(websocket: WebSocket):
        await websocket.accept()
        source = websocket.client.host if websocket.client else "unknown"
        client = gateway.connect_client(source)
        if client is None:
            await websocket.close(code=1013, reason="Max clients reached")
            return

        async def downstream() -> None:
            while True:
                message = await client.outbox.get()
                await websocket.send_text(json.dumps(message))

        sender = asyncio.create_task(downstream())
        try:
            while True:
                data = await websocket.receive_text()
                if len(data.encode("utf-8")) > MAX_WS_MESSAGE_BYTES:
                    client.send({"type": "error", "message": "Message too large"})
                    continue
                try:
                    decoded = json.loads(data)
                except json.JSONDecodeError:
                    client.send({"type": "error", "message": "Invalid JSON"})
                    continue

                match parse_client_action(decoded):
                    case Ok(action):
                        gateway.handle_client_action(client, action)
                    case Error(message):
                        client.send({"type": "error", "message": message})
        except WebSocketDisconnect:
            logger.info(f"[server] WebSocket disconnected: {client.client_id}")
        finally:
            sender.cancel()
            await asyncio.wait({sender})
            if not sender.cancelled() and sender.exception() is not None:
                logger.error(
                    f"[server] Sender for {client.client_id} failed: {sender.exception()!r}"
                )
            gateway.disconnect_client(client.client_id)

    return app


# ============================================================
# Entry point
# ============================================================


async def serve(gateway: Gateway) -> None:
    """Run the hook app and the client app until cancelled."""
    import uvicorn

    config = gateway.config
    hook_server = uvicorn.Server(
        uvicorn.Config(
            create_hook_app(gateway),
            host="127.0.0.1",
            port=config.hook_http_port,
            log_level="warning",
        )
    )
    client_server = uvicorn.Server(
        uvicorn.Config(
            create_client_app(gateway),
            host=config.bind_host,
            port=config.ws_port,
            log_level="warning",
            ws_max_size=MAX_WS_MESSAGE_BYTES,
        )
    )
    logger.info(f"[server] Hooks on 127.0.0.1:{config.hook_http_port}")
    logger.info(f"[server] Clients on {config.bind_host}:{config.ws_port}")
    await asyncio.gather(hook_server.serve(), client_server.serve())


def main() -> None:
    load_dotenv(".env.local")
    configure_logging()

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    add_file_sink(str(log_dir / "gateway.log"))

    config = load_config(env_file=None)
    gateway = Gateway(config)
    logger.info(f"[server] Pairing payload ready (relay={config.relay_enabled}); fetch it from /api/pairing")
    asyncio.run(serve(gateway))


if __name__ == "__main__":
    main()
