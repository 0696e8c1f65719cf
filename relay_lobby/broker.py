"""The lobby broker: one owning object for all session, room and event state.

Every entry point (connect, receive, disconnect, liveness sweep) runs under a
single ``asyncio.Lock`` so core state is only ever mutated sequentially.
After each entry point, peers that failed a send or were asked to close are
settled through the same cleanup path as a real disconnect.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

from .bans import BanList
from .constants import POLICY_VIOLATION
from .courier import Courier
from .directory import RoomDirectory
from .events import EventBoard
from .liveness import AlarmScheduler, LivenessMonitor
from .lobby import LobbyBroadcaster
from .logging_config import get_logger
from .registry import ConnectionRegistry
from .relay import RelayRouter
from .schemas import LobbySnapshot
from .session import Session
from .settings import Settings

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


async def close_quietly(connection: Any, code: int = 1000) -> None:
    try:
        await connection.close(code=code)
    except Exception as exc:
        # Already closed by the peer or the transport
        logger.debug(f"Ignoring error while closing connection: {exc!r}")


class LobbyBroker:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        bans: Optional[BanList] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.settings = settings or Settings()
        self._clock = clock
        self._lock = asyncio.Lock()

        self.bans = bans if bans is not None else BanList()
        self.courier = Courier()
        self.registry = ConnectionRegistry(clock)
        self.directory = RoomDirectory(self.registry, self.courier)
        self.board = EventBoard(self.bans, self.courier, clock, self.settings.max_events)
        self.lobby = LobbyBroadcaster(self.registry, self.directory, self.board, self.courier)
        self.monitor = LivenessMonitor(
            self.registry,
            self.courier,
            clock,
            auth_grace_ms=self.settings.auth_grace_ms,
            heartbeat_idle_ms=self.settings.heartbeat_idle_ms,
            interval_ms=self.settings.sweep_interval_ms,
        )
        self.monitor.bind(AlarmScheduler(self.sweep))
        self.router = RelayRouter(
            self.registry,
            self.directory,
            self.board,
            self.bans,
            self.lobby,
            self.courier,
            self.monitor,
        )
        self.directory.provision_slots(self.settings.server_slots)

    # ---------------------------------------------------------------------
    # Transport entry points
    # ---------------------------------------------------------------------

    async def connect(self, connection: Any, ip: str) -> Optional[Session]:
        """Accept *connection* and send the lobby snapshot; banned IPs are refused."""
        async with self._lock:
            if self.bans.is_ip_banned(ip):
                logger.info(f"Refused connection from banned ip {ip}")
                await close_quietly(connection, POLICY_VIOLATION)
                return None
            await connection.accept()
            session = self.registry.register(connection, ip)
            logger.info(f"Session {session.id} connected from {ip}")
            self.monitor.ensure_armed()
            await self.lobby.snapshot(session)
            await self._settle()
            return session

    async def receive(self, connection: Any, text: str) -> None:
        async with self._lock:
            session = self.registry.resolve(connection)
            if session is None or self.courier.is_doomed(session):
                return
            self.registry.touch(session)
            await self.router.route(session, text)
            await self._settle()

    async def disconnect(self, connection: Any) -> None:
        """Idempotent: a connection the broker already released is ignored."""
        async with self._lock:
            session = self.registry.resolve(connection)
            if session is not None:
                await self._release(session)
            await self._settle()

    async def sweep(self) -> None:
        async with self._lock:
            await self.monitor.sweep()
            await self._settle()
            self.monitor.ensure_armed()

    # ---------------------------------------------------------------------
    # Maintenance
    # ---------------------------------------------------------------------

    async def evict(self) -> None:
        """Drop the in-memory working set; open connections rehydrate on their next event."""
        async with self._lock:
            self.registry.evict()
            self.directory.clear()
            self.board.clear()
            logger.warning("Broker working set evicted")

    async def lobby_snapshot(self) -> LobbySnapshot:
        async with self._lock:
            rooms, _ = self.directory.listing()
            return LobbySnapshot(rooms=rooms, events=list(self.board.live()), clients=len(self.registry))

    async def shutdown(self) -> None:
        if self.monitor.scheduler is not None:
            self.monitor.scheduler.close()

    # ---------------------------------------------------------------------
    # Cleanup
    # ---------------------------------------------------------------------

    async def _release(self, session: Session) -> None:
        was_in_room = session.room_id is not None
        await self.directory.release(session)
        owner = self.registry.get(session.owner_id)
        if owner is not None and owner is not session:
            await self.courier.send(owner, "onclose", session.id)
        self.registry.remove(session)
        logger.info(f"Session {session.id} disconnected")
        if was_in_room:
            await self.lobby.update_rooms()
        else:
            await self.lobby.update_clients()

    async def _settle(self) -> None:
        while True:
            doomed = self.courier.take_doomed()
            if not doomed:
                return
            for session in doomed:
                current = self.registry.get(session.id)
                if current is not None:
                    await self._release(current)
                else:
                    self.registry.remove(session)
                await close_quietly(session.connection)


__all__ = ["LobbyBroker", "now_ms", "close_quietly"]
