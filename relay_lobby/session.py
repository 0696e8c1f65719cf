from __future__ import annotations

from typing import Any, Optional

from .constants import DEFAULT_NICKNAME, NICKNAME_MAX_LENGTH
from .schemas import Attachment


def sanitize_nickname(value: Any) -> str:
    """Truncate string nicknames; anything else becomes the placeholder."""
    if isinstance(value, str):
        return value[:NICKNAME_MAX_LENGTH]
    return DEFAULT_NICKNAME


class Session:
    """Server-side state for one connected client.

    Links to other sessions and rooms are stored as ids and always re-resolved
    through the registry / directory, so dropping and rebuilding the working
    set never leaves a dangling reference.
    """

    def __init__(self, session_id: str, connection: Any, ip: str, connected_at: int):
        self.id = session_id
        self.connection = connection
        self.ip = ip
        self.nickname: str = DEFAULT_NICKNAME
        self.avatar: Any = ""
        self.auth_key: Optional[Any] = None
        self.authenticated: bool = False
        # room whose roster this session belongs to
        self.room_id: Optional[str] = None
        # session that relays this session's traffic (set for guests only)
        self.owner_id: Optional[str] = None
        self.status: Optional[str] = None
        self.servermode: bool = False
        # claimant waiting for this (owner) session to publish its config
        self.pending_handoff_id: Optional[str] = None
        self.connected_at = connected_at
        self.last_activity_at = connected_at
        self.awaiting_pong: bool = False

    # ------------------------------------------------------------------
    # Durable attachment
    # ------------------------------------------------------------------

    def to_attachment(self) -> Attachment:
        return Attachment(
            session_id=self.id,
            ip=self.ip,
            connected_at=self.connected_at,
            authenticated=self.authenticated,
            auth_key=self.auth_key,
        )

    @classmethod
    def from_attachment(cls, attachment: Attachment, connection: Any, now: int) -> "Session":
        """Rebuild a minimal session after the working set was dropped."""
        session = cls(attachment.session_id, connection, attachment.ip, attachment.connected_at)
        session.authenticated = attachment.authenticated
        session.auth_key = attachment.auth_key
        session.last_activity_at = now
        return session

    def set_identity(self, nickname: Any, avatar: Any) -> None:
        self.nickname = sanitize_nickname(nickname)
        self.avatar = avatar

    def __repr__(self) -> str:
        return f"<Session {self.id} ip={self.ip} room={self.room_id} owner={self.owner_id}>"


__all__ = ["Session", "sanitize_nickname"]
