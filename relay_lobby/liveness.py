"""
Liveness monitoring for lobby connections.

A recurring sweep enforces the authentication grace window and the
heartbeat protocol. The sweep is driven by ``AlarmScheduler``, a single
re-armable wakeup that is only armed while connections remain open.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from .constants import AUTH_GRACE_MS, HEARTBEAT, HEARTBEAT_IDLE_MS, SWEEP_INTERVAL_MS
from .courier import Courier
from .logging_config import get_logger
from .registry import ConnectionRegistry
from .session import Session

logger = get_logger(__name__)


class AlarmScheduler:
    """At most one pending wakeup; arming while one is pending is a no-op.

    Once closed, the scheduler refuses to arm again, including from a
    callback that was already running when ``close`` was called.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]]):
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self.closed = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, delay_ms: int) -> bool:
        if self.closed or self.pending:
            return False
        self._task = asyncio.get_running_loop().create_task(self._fire(delay_ms))
        return True

    async def _fire(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        # Cleared before the callback so it can re-arm itself
        self._task = None
        try:
            await self._callback()
        except Exception:
            logger.error("Liveness alarm callback failed", exc_info=True)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def close(self) -> None:
        self.closed = True
        self.cancel()


class LivenessMonitor:
    def __init__(
        self,
        registry: ConnectionRegistry,
        courier: Courier,
        clock: Callable[[], int],
        auth_grace_ms: int = AUTH_GRACE_MS,
        heartbeat_idle_ms: int = HEARTBEAT_IDLE_MS,
        interval_ms: int = SWEEP_INTERVAL_MS,
    ):
        self._registry = registry
        self._courier = courier
        self._clock = clock
        self.auth_grace_ms = auth_grace_ms
        self.heartbeat_idle_ms = heartbeat_idle_ms
        self.interval_ms = interval_ms
        self.scheduler: Optional[AlarmScheduler] = None

    def bind(self, scheduler: AlarmScheduler) -> None:
        self.scheduler = scheduler

    def ensure_armed(self) -> None:
        """Arm the next sweep if connections remain and none is pending."""
        if self.scheduler is not None and self._registry.connections:
            self.scheduler.arm(self.interval_ms)

    def auth_expired(self, session: Session, now: Optional[int] = None) -> bool:
        if session.authenticated:
            return False
        now = self._clock() if now is None else now
        return now - session.connected_at > self.auth_grace_ms

    async def sweep(self) -> None:
        now = self._clock()
        connections = self._registry.open_connections()
        logger.debug(f"Liveness sweep over {len(connections)} connections")
        for connection in connections:
            session = self._registry.resolve(connection)
            if session is None or self._courier.is_doomed(session):
                continue
            await self.check(session, now)

    async def check(self, session: Session, now: int) -> None:
        if self.auth_expired(session, now):
            logger.warning(f"Session {session.id} did not authenticate in time")
            await self._courier.send(session, "denied", "key")
            self._courier.close(session)
            return

        if now - session.last_activity_at <= self.heartbeat_idle_ms:
            return
        if session.awaiting_pong:
            logger.info(f"Session {session.id} missed its heartbeat; closing")
            self._courier.close(session)
            return
        session.awaiting_pong = True
        await self._courier.send_text(session, HEARTBEAT)


__all__ = ["AlarmScheduler", "LivenessMonitor"]
