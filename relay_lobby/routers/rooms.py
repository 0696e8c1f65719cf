from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from ..broker import LobbyBroker
from ..schemas import LobbySnapshot

router = APIRouter(prefix="", tags=["rooms"])


@router.get("/", response_class=PlainTextResponse)
async def banner():
    return "Noname lobby"


@router.get("/rooms", response_model=LobbySnapshot)
async def list_rooms(request: Request):
    broker: LobbyBroker = request.app.state.broker
    return await broker.lobby_snapshot()
