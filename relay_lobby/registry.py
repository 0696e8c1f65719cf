"""Connection registry: session table plus the host-level open-connection table.

The session table is the broker's working set and may be dropped at any point
(``evict``). The open-connection table mirrors what the transport still holds
and survives eviction; together with the attachment stored on each
connection it is enough to rebuild a session on its next inbound event.
"""
from __future__ import annotations

import secrets
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic import ValidationError

from .constants import ATTACHMENT_KEY
from .logging_config import get_logger
from .schemas import Attachment
from .session import Session

logger = get_logger(__name__)

Clock = Callable[[], int]


def read_attachment(connection: Any) -> Optional[Attachment]:
    raw = getattr(connection.state, ATTACHMENT_KEY, None)
    if raw is None:
        return None
    try:
        return Attachment.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding malformed connection attachment")
        return None


def write_attachment(connection: Any, attachment: Attachment) -> None:
    setattr(connection.state, ATTACHMENT_KEY, attachment.model_dump())


class ConnectionRegistry:
    def __init__(self, clock: Clock):
        self._clock = clock
        self.sessions: Dict[str, Session] = {}
        # session id -> connection, owned by the transport side
        self.connections: Dict[str, Any] = {}

    # -------------------- Lifecycle -------------------- #

    def new_session_id(self) -> str:
        while True:
            session_id = str(1_000_000_000 + secrets.randbelow(9_000_000_000))
            if session_id not in self.connections and session_id not in self.sessions:
                return session_id

    def register(self, connection: Any, ip: str) -> Session:
        session = Session(self.new_session_id(), connection, ip, self._clock())
        self.sessions[session.id] = session
        self.connections[session.id] = connection
        self.write_attachment(session)
        return session

    def resolve(self, connection: Any) -> Optional[Session]:
        """Return the session behind *connection*, rebuilding it if it was evicted."""
        attachment = read_attachment(connection)
        if attachment is None:
            return None
        if self.connections.get(attachment.session_id) is not connection:
            # already released, or a stale handle
            return None
        session = self.sessions.get(attachment.session_id)
        if session is None:
            session = Session.from_attachment(attachment, connection, self._clock())
            self.sessions[session.id] = session
            logger.info(f"Rehydrated session {session.id} from connection attachment")
        return session

    def remove(self, session: Session) -> None:
        self.sessions.pop(session.id, None)
        if self.connections.get(session.id) is session.connection:
            del self.connections[session.id]

    def evict(self) -> None:
        """Forget every in-memory session; connections stay open."""
        self.sessions.clear()

    # -------------------- Helpers -------------------- #

    def write_attachment(self, session: Session) -> None:
        write_attachment(session.connection, session.to_attachment())

    def touch(self, session: Session) -> None:
        session.last_activity_at = self._clock()
        session.awaiting_pong = False

    def get(self, session_id: Any) -> Optional[Session]:
        if not isinstance(session_id, str):
            return None
        return self.sessions.get(session_id)

    def open_connections(self) -> List[Any]:
        return list(self.connections.values())

    def lobby_sessions(self) -> List[Session]:
        return [s for s in self.sessions.values() if s.room_id is None]

    def members_of(self, room_id: str) -> List[Session]:
        return [s for s in self.sessions.values() if s.room_id == room_id]

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self.sessions.values()))

    def __len__(self) -> int:
        return len(self.sessions)


__all__ = ["ConnectionRegistry", "read_attachment", "write_attachment"]
