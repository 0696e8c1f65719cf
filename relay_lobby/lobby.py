"""Snapshots of the lobby and the lobby-only fan-out."""
from __future__ import annotations

from typing import Any, List

from .courier import Courier
from .directory import RoomDirectory
from .events import EventBoard
from .registry import ConnectionRegistry
from .session import Session


class LobbyBroadcaster:
    def __init__(self, registry: ConnectionRegistry, directory: RoomDirectory, board: EventBoard, courier: Courier):
        self._registry = registry
        self._directory = directory
        self._board = board
        self._courier = courier

    # -------------------- Snapshots -------------------- #

    async def room_list(self) -> List[Any]:
        """Current room list; owners of empty listed rooms are told to reload."""
        entries, stale = self._directory.listing()
        for owner_id in stale:
            owner = self._registry.get(owner_id)
            if owner is not None:
                await self._courier.send(owner, "reloadroom")
        return entries

    def client_list(self) -> List[List[Any]]:
        return [
            [s.nickname, s.avatar, s.room_id is None, s.status, s.id, s.auth_key]
            for s in self._registry
        ]

    async def snapshot(self, session: Session) -> None:
        """Initial ``roomlist`` message for a fresh connection."""
        rooms = await self.room_list()
        await self._courier.send(
            session, "roomlist", rooms, self._board.serialize(), self.client_list(), session.id
        )

    # -------------------- Fan-out -------------------- #

    async def update_rooms(self) -> None:
        rooms = await self.room_list()
        clients = self.client_list()
        for session in self._registry.lobby_sessions():
            await self._courier.send(session, "updaterooms", rooms, clients)

    async def update_clients(self) -> None:
        clients = self.client_list()
        for session in self._registry.lobby_sessions():
            await self._courier.send(session, "updateclients", clients)

    async def update_events(self) -> None:
        events = self._board.serialize()
        for session in self._registry.lobby_sessions():
            await self._courier.send(session, "updateevents", events)


__all__ = ["LobbyBroadcaster"]
