"""Room directory: room lifecycle, ownership and the servermode handoff."""
from __future__ import annotations

import itertools
from typing import Any, List, Optional, Tuple

from .courier import Courier
from .logging_config import get_logger
from .registry import ConnectionRegistry
from .room import Room
from .session import Session

logger = get_logger(__name__)

SERVER_MARKER = "server"


class RoomDirectory:
    def __init__(self, registry: ConnectionRegistry, courier: Courier):
        self._registry = registry
        self._courier = courier
        self._ids = itertools.count(1)
        # Ordered: the list index is the slot index used by ``server``
        self.rooms: List[Room] = []

    # -------------------- Lookups -------------------- #

    def _new_room(self, key: Any = None, owner_id: Optional[str] = None, slot: bool = False) -> Room:
        room = Room(f"room-{next(self._ids)}", key=key, owner_id=owner_id, slot=slot)
        self.rooms.append(room)
        return room

    def get(self, room_id: Optional[str]) -> Optional[Room]:
        if room_id is None:
            return None
        for room in self.rooms:
            if room.room_id == room_id:
                return room
        return None

    def find(self, key: Any) -> Optional[Room]:
        if key is None:
            return None
        for room in self.rooms:
            if room.key == key:
                return room
        return None

    def slot(self, index: Any) -> Optional[Room]:
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        if 0 <= index < len(self.rooms):
            return self.rooms[index]
        return None

    def owned_by(self, session_id: str) -> List[Room]:
        return [room for room in self.rooms if room.owner_id == session_id]

    def provision_slots(self, count: int) -> None:
        """Add *count* unowned rooms for dedicated relay hosts; each is keyed by its slot index."""
        for _ in range(count):
            self._new_room(key=len(self.rooms), slot=True)

    def clear(self) -> None:
        """Drop every room; provisioned slots come back empty."""
        slots = sum(1 for room in self.rooms if room.slot)
        self.rooms.clear()
        self.provision_slots(slots)

    # -------------------- Commands -------------------- #

    async def create(self, session: Session, key: Any, nickname: Any, avatar: Any, config: Any = None) -> Optional[Room]:
        """Open a room under the caller's validated key; anything else is ignored."""
        if key is None or session.auth_key != key:
            return None
        session.set_identity(nickname, avatar)
        room = self._new_room(key=key, owner_id=session.id)
        if config is not None:
            room.config = config
        session.room_id = room.room_id
        session.status = None
        logger.info(f"Session {session.id} created room {key!r}")
        await self._courier.send(session, "createroom", key)
        return room

    async def enter(
        self,
        session: Session,
        key: Any,
        nickname: Any,
        avatar: Any,
        config: Any = None,
        mode: Any = None,
    ) -> bool:
        """Join a room as guest, or claim a servermode slot. Returns True on success."""
        session.set_identity(nickname, avatar)
        room = self.find(key)
        owner = self._registry.get(room.owner_id) if room else None
        if room is None or owner is None or owner is session:
            await self._courier.send(session, "enterroomfailed")
            return False

        if room.is_open_slot() and config is not None and mode:
            # Server claim: the generic host is configured by whoever claims it
            room.pending_handoff_id = session.id
            owner.pending_handoff_id = session.id
            owner.set_identity(nickname, avatar)
            session.room_id = room.room_id
            session.status = None
            logger.info(f"Session {session.id} claimed servermode room {room.key!r}")
            await self._courier.send(owner, "createroom", room.key, config, mode)
            return True

        if not room.accepts_guests():
            await self._courier.send(session, "enterroomfailed")
            return False

        session.room_id = room.room_id
        session.status = None
        session.owner_id = owner.id
        await self._courier.send(owner, "onconnection", session.id)
        return True

    async def server(self, session: Session, cfg: Any = None) -> bool:
        """Claim a slot as a dedicated relay host. Returns True if the room list should be re-sent."""
        if cfg is not None:
            index = cfg[0] if isinstance(cfg, list) and cfg else None
            room = self.slot(index)
            if room is None or room.owner_id is not None:
                await self._courier.send(session, "reloadroom", True)
                return False
            room.owner_id = session.id
            room.servermode = True
            session.room_id = room.room_id
            session.servermode = True
            session.set_identity(cfg[1] if len(cfg) > 1 else None, cfg[2] if len(cfg) > 2 else None)
            logger.info(f"Session {session.id} took relay slot {index}")
            await self._courier.send(session, "createroom", index, {}, "auto")
            return False

        for room in self.rooms:
            if room.owner_id is None:
                room.owner_id = session.id
                room.servermode = True
                session.room_id = room.room_id
                session.servermode = True
                logger.info(f"Session {session.id} took first free relay slot")
                break
        return True

    async def configure(self, session: Session, config: Any) -> None:
        """Publish the owner's config, finishing a pending servermode handoff."""
        room = self.get(session.room_id)
        if room is None or room.owner_id != session.id:
            return
        if room.servermode:
            room.servermode = False
            target = self._registry.get(room.pending_handoff_id)
            if target is not None:
                target.owner_id = session.id
                logger.info(f"Room {room.key!r} handed over; {target.id} now relays through {session.id}")
                await self._courier.send(session, "onconnection", target.id)
            room.pending_handoff_id = None
            session.pending_handoff_id = None
        room.config = config

    async def release(self, session: Session) -> None:
        """Remove every room *session* owns and detach their other members."""
        for room in self.owned_by(session.id):
            for member in self._registry.members_of(room.room_id):
                if member is session:
                    continue
                member.room_id = None
                member.owner_id = None
                await self._courier.send(member, "selfclose")
            if room.slot:
                room.reset()
                logger.info(f"Relay slot {room.key!r} freed by {session.id}")
            else:
                self.rooms.remove(room)
                logger.info(f"Room {room.key!r} closed with its owner {session.id}")
        for room in self.rooms:
            if room.pending_handoff_id == session.id:
                room.pending_handoff_id = None
                owner = self._registry.get(room.owner_id)
                if owner is not None:
                    owner.pending_handoff_id = None

    # -------------------- Listing -------------------- #

    def listing(self) -> Tuple[List[Any], List[str]]:
        """Return ``(entries, stale_owner_ids)`` without side effects."""
        entries: List[Any] = []
        stale: List[str] = []
        for room in self.rooms:
            if room.is_open_slot():
                entries.append(SERVER_MARKER)
                continue
            owner = self._registry.get(room.owner_id)
            if owner is None or not room.has_config:
                continue
            live = sum(1 for m in self._registry.members_of(room.room_id) if not m.servermode)
            if live == 0:
                stale.append(owner.id)
            entries.append([owner.nickname, owner.avatar, room.config, live, room.key])
        return entries, stale


__all__ = ["RoomDirectory", "SERVER_MARKER"]
