"""Inbound message routing.

Guest traffic is relayed verbatim to the room owner; everything else must be
a ``["server", command, *args]`` envelope and is dispatched through a fixed
command table. Handlers never raise for bad arguments: noise is dropped.
"""
from __future__ import annotations

import json
import math
from typing import Any, Awaitable, Callable, Dict

from .bans import BanList
from .constants import COMMAND_TAG, HEARTBEAT
from .courier import Courier
from .directory import RoomDirectory
from .events import EventBoard
from .liveness import LivenessMonitor
from .lobby import LobbyBroadcaster
from .logging_config import get_logger
from .registry import ConnectionRegistry
from .session import Session

logger = get_logger(__name__)

Handler = Callable[..., Awaitable[None]]

_INVALID = object()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number out of range: {text}")
    return value


def decode(text: str) -> Any:
    """Strict JSON: NaN, Infinity and overflowing numbers count as malformed."""
    try:
        return json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
    except ValueError:
        return _INVALID


def is_command(payload: Any, name: str) -> bool:
    return (
        isinstance(payload, list)
        and len(payload) >= 2
        and payload[0] == COMMAND_TAG
        and payload[1] == name
    )


class RelayRouter:
    def __init__(
        self,
        registry: ConnectionRegistry,
        directory: RoomDirectory,
        board: EventBoard,
        bans: BanList,
        lobby: LobbyBroadcaster,
        courier: Courier,
        monitor: LivenessMonitor,
    ):
        self._registry = registry
        self._directory = directory
        self._board = board
        self._bans = bans
        self._lobby = lobby
        self._courier = courier
        self._monitor = monitor
        self.commands: Dict[str, Handler] = {
            "create": self.handle_create,
            "enter": self.handle_enter,
            "changeAvatar": self.handle_change_avatar,
            "server": self.handle_server,
            "key": self.handle_key,
            "events": self.handle_events,
            "config": self.handle_config,
            "status": self.handle_status,
            "send": self.handle_send,
            "close": self.handle_close,
        }

    async def route(self, session: Session, text: str) -> None:
        payload: Any = _INVALID
        if self._monitor.auth_expired(session):
            payload = decode(text)
            if not is_command(payload, "key"):
                logger.warning(f"Session {session.id} sent traffic after its auth window")
                await self._courier.send(session, "denied", "key")
                self._courier.close(session)
                return

        if text == HEARTBEAT:
            return

        if session.owner_id is not None:
            owner = self._registry.get(session.owner_id)
            if owner is not None:
                await self._courier.send(owner, "onmessage", session.id, text)
            return

        if payload is _INVALID:
            payload = decode(text)
        if not isinstance(payload, list):
            logger.warning(f"Session {session.id} sent a malformed message")
            await self._courier.send(session, "denied", "banned")
            return
        if len(payload) < 2 or payload[0] != COMMAND_TAG:
            return
        name = payload[1]
        handler = self.commands.get(name) if isinstance(name, str) else None
        if handler is None:
            return
        await handler(session, *payload[2:])

    # ---------------------------------------------------------------------
    # Lobby commands
    # ---------------------------------------------------------------------

    async def handle_create(self, session: Session, key=None, nickname=None, avatar=None, config=None, mode=None, *_):
        room = await self._directory.create(session, key, nickname, avatar, config)
        if room is not None:
            await self._lobby.update_rooms()

    async def handle_enter(self, session: Session, key=None, nickname=None, avatar=None, config=None, mode=None, *_):
        if await self._directory.enter(session, key, nickname, avatar, config, mode):
            await self._lobby.update_rooms()

    async def handle_change_avatar(self, session: Session, nickname=None, avatar=None, *_):
        session.set_identity(nickname, avatar)
        await self._lobby.update_clients()

    async def handle_server(self, session: Session, cfg=None, *_):
        if await self._directory.server(session, cfg):
            await self._lobby.update_rooms()

    async def handle_key(self, session: Session, id_tuple=None, *_):
        if not isinstance(id_tuple, list) or not id_tuple or id_tuple[0] is None:
            await self._courier.send(session, "denied", "key")
            self._courier.close(session)
            return
        if self._bans.is_key_banned(id_tuple[0]):
            # No reply: the client learns nothing about why it was dropped
            logger.warning(f"Session {session.id} presented a banned key; banning {session.ip}")
            self._bans.ban_ip(session.ip)
            self._courier.close(session)
            return
        session.auth_key = id_tuple[0]
        session.authenticated = True
        self._registry.write_attachment(session)

    async def handle_events(self, session: Session, candidate=None, auth_key=None, action=None, *_):
        if await self._board.submit(session, candidate, auth_key, action):
            await self._lobby.update_events()

    async def handle_config(self, session: Session, config=None, *_):
        await self._directory.configure(session, config)
        await self._lobby.update_rooms()

    async def handle_status(self, session: Session, status=None, *_):
        session.status = status if isinstance(status, str) else None
        await self._lobby.update_clients()

    # ---------------------------------------------------------------------
    # Owner -> guest relay
    # ---------------------------------------------------------------------

    async def handle_send(self, session: Session, target_id=None, message=None, *_):
        target = self._registry.get(target_id)
        if target is None or target.owner_id != session.id:
            return
        text = message if isinstance(message, str) else json.dumps(message, ensure_ascii=False, allow_nan=False)
        await self._courier.send_text(target, text)

    async def handle_close(self, session: Session, target_id=None, *_):
        target = self._registry.get(target_id)
        if target is not None and target.owner_id == session.id:
            self._courier.close(target)


__all__ = ["RelayRouter", "decode", "is_command"]
