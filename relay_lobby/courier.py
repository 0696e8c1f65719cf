"""Outbound side of the broker.

Sends never raise into a handler: a failed send marks the peer as doomed and
the broker settles doomed peers (same cleanup as a disconnect) once the
current handler has finished.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List

from .logging_config import get_logger
from .session import Session

logger = get_logger(__name__)


def encode(*items: Any) -> str:
    return json.dumps(list(items), ensure_ascii=False, allow_nan=False)


class Courier:
    def __init__(self) -> None:
        self._doomed: Dict[str, Session] = {}

    async def send(self, session: Session, *items: Any) -> None:
        """Send ``[item, ...]`` as a JSON text frame."""
        await self.send_text(session, encode(*items))

    async def send_text(self, session: Session, text: str) -> None:
        if session.id in self._doomed:
            return
        try:
            await session.connection.send_text(text)
        except Exception as exc:
            logger.debug(f"Send to {session.id} failed ({exc!r}); treating as disconnect")
            self._doomed[session.id] = session

    def close(self, session: Session) -> None:
        """Schedule *session* for cleanup and socket close."""
        self._doomed.setdefault(session.id, session)

    def is_doomed(self, session: Session) -> bool:
        return session.id in self._doomed

    def take_doomed(self) -> List[Session]:
        doomed = list(self._doomed.values())
        self._doomed.clear()
        return doomed


__all__ = ["Courier", "encode"]
