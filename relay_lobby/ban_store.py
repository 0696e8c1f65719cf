"""Loads the ban list from the database and writes new bans back to it."""
from __future__ import annotations

import asyncio
from typing import Set

from .bans import BanList
from .logging_config import get_logger
from .models import Ban

logger = get_logger(__name__)


class BanStore:
    def __init__(self) -> None:
        self._pending: Set[asyncio.Task] = set()

    async def load(self, bans: BanList) -> int:
        """Copy every stored entry into *bans*; returns the number of rows read."""
        rows = await Ban.all()
        for row in rows:
            try:
                bans.add(row.kind, row.value)
            except ValueError:
                logger.warning(f"Skipping ban row {row.id} with unknown kind {row.kind!r}")
        logger.info(f"Loaded {len(rows)} ban entries")
        return len(rows)

    async def save(self, kind: str, value: str) -> None:
        await Ban.get_or_create(kind=kind, value=value)

    def attach(self, bans: BanList) -> None:
        """Persist every ban added to *bans* from now on."""
        bans.subscribe(self._on_ban)

    def _on_ban(self, kind: str, value: str) -> None:
        task = asyncio.get_running_loop().create_task(self._save_logged(kind, value))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save_logged(self, kind: str, value: str) -> None:
        try:
            await self.save(kind, value)
        except Exception:
            logger.error(f"Failed to persist ban {kind}={value!r}", exc_info=True)

    async def drain(self) -> None:
        """Wait for in-flight writes (used at shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ["BanStore"]
