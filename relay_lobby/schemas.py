"""Pydantic data schemas used across the broker.

This module centralises the models that cross a boundary (the durable
per-connection attachment, event records pushed to clients and the HTTP
lobby view) so other modules can import them from a single location.
"""
from __future__ import annotations

from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# -----------------------------
# Per-connection durable state
# -----------------------------


class Attachment(BaseModel):
    """Minimal identity kept on the connection itself.

    Survives the broker dropping its in-memory working set; every inbound
    event reads it back to find or rebuild the session.
    """

    session_id: str
    ip: str
    connected_at: int
    authenticated: bool = False
    auth_key: Optional[Any] = None


# -----------------------------
# Event board
# -----------------------------


class Event(BaseModel):
    """A scheduled lobby event. ``utc`` is the absolute expiry in ms.

    Extra fields sent by the creating client are kept and pushed back out.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    creator: str
    utc: Union[int, float]
    day: Any = None
    hour: Any = None
    content: Any = None
    nickname: str
    avatar: Any = None
    members: List[str] = Field(default_factory=list)


# -----------------------------
# HTTP views
# -----------------------------


class LobbySnapshot(BaseModel):
    rooms: List[Any]
    events: List[Event]
    clients: int


__all__ = ["Attachment", "Event", "LobbySnapshot"]
