"""Scheduled-events bulletin board."""
from __future__ import annotations

import math
import secrets
from typing import Any, Callable, List, Optional

from .bans import BanList
from .constants import DEFAULT_EVENT_AVATAR, MAX_EVENTS
from .courier import Courier
from .logging_config import get_logger
from .schemas import Event
from .session import Session, sanitize_nickname

logger = get_logger(__name__)

EVENT_FIELDS = ("utc", "day", "hour", "content")


class EventBoard:
    """Holds at most ``max_events`` live events, newest first.

    Expired events are purged lazily whenever the list is read.
    """

    def __init__(self, bans: BanList, courier: Courier, clock: Callable[[], int], max_events: int = MAX_EVENTS):
        self._bans = bans
        self._courier = courier
        self._clock = clock
        self.max_events = max_events
        self.events: List[Event] = []

    def live(self) -> List[Event]:
        now = self._clock()
        self.events = [event for event in self.events if event.utc > now]
        return self.events

    def serialize(self) -> List[dict]:
        return [event.model_dump() for event in self.live()]

    def find(self, event_id: str) -> Optional[Event]:
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def clear(self) -> None:
        self.events.clear()

    def _new_id(self) -> str:
        while True:
            event_id = str(1_000_000_000 + secrets.randbelow(9_000_000_000))
            if self.find(event_id) is None:
                return event_id

    async def submit(self, session: Session, candidate: Any, auth_key: Any, action: Any = None) -> bool:
        """Create, join or leave an event. Returns True when the list changed."""
        if not isinstance(auth_key, str) or self._bans.is_key_banned(auth_key) or session.auth_key != auth_key:
            logger.warning(f"Session {session.id} sent events with a bad key; banning {session.ip}")
            self._bans.ban_ip(session.ip)
            self._courier.close(session)
            return False
        if not candidate:
            return False
        if isinstance(candidate, str):
            return self._update_membership(candidate, auth_key, action)
        if isinstance(candidate, dict) and all(name in candidate for name in EVENT_FIELDS):
            return await self._create(session, candidate, auth_key)
        return False

    def _update_membership(self, event_id: str, auth_key: str, action: Any) -> bool:
        event = self.find(event_id)
        if event is None:
            return False
        if action == "join":
            if auth_key not in event.members:
                event.members.append(auth_key)
            return True
        if action == "leave":
            if auth_key in event.members:
                event.members.remove(auth_key)
                if not event.members:
                    self.events.remove(event)
            return True
        return False

    async def _create(self, session: Session, candidate: dict, auth_key: str) -> bool:
        utc = candidate["utc"]
        if len(self.live()) >= self.max_events:
            await self._courier.send(session, "eventsdenied", "total")
            return False
        if (
            isinstance(utc, bool)
            or not isinstance(utc, (int, float))
            or (isinstance(utc, float) and not math.isfinite(utc))
            or utc <= self._clock()
        ):
            await self._courier.send(session, "eventsdenied", "time")
            return False
        if self._bans.contains_banned_keyword(candidate["content"]):
            await self._courier.send(session, "eventsdenied", "ban")
            return False
        # Unknown client fields are kept next to the ones the board fills in
        extra = {
            name: value
            for name, value in candidate.items()
            if name not in Event.model_fields and not name.startswith("_")
        }
        event = Event(
            **extra,
            id=self._new_id(),
            creator=auth_key,
            utc=utc,
            day=candidate["day"],
            hour=candidate["hour"],
            content=candidate["content"],
            nickname=sanitize_nickname(candidate.get("nickname")),
            avatar=candidate.get("avatar") or DEFAULT_EVENT_AVATAR,
            members=[auth_key],
        )
        self.events.insert(0, event)
        logger.info(f"Session {session.id} posted event {event.id}")
        return True


__all__ = ["EventBoard"]
