from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..broker import LobbyBroker
from ..logging_config import get_logger

router = APIRouter(prefix="", tags=["ws"])

logger = get_logger(__name__)


def client_ip(ws: WebSocket) -> str:
    """Best-effort peer address: proxy headers first, then the socket peer."""
    header = ws.headers.get("cf-connecting-ip") or ws.headers.get("x-forwarded-for") or ""
    ip = header.split(",")[0].strip()
    if ip:
        return ip
    if ws.client is not None and ws.client.host:
        return ws.client.host
    return "unknown"


@router.websocket("/")
async def lobby_ws_endpoint(ws: WebSocket):
    broker: LobbyBroker = ws.app.state.broker
    session = await broker.connect(ws, client_ip(ws))
    if session is None:
        return
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                data = message.get("bytes") or b""
                text = data.decode("utf-8", errors="replace")
            await broker.receive(ws, text)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.error(f"WebSocket error for session {session.id}", exc_info=True)
    finally:
        await broker.disconnect(ws)
