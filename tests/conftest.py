import json
from types import SimpleNamespace
from typing import Any, List

import pytest

from relay_lobby.broker import LobbyBroker
from relay_lobby.constants import HEARTBEAT
from relay_lobby.settings import Settings

START = 1_700_000_000_000


class FakeClock:
    def __init__(self, start: int = START):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeConnection:
    """Stands in for a WebSocket: records frames, can be told to fail sends."""

    def __init__(self, fail_send: bool = False):
        self.state = SimpleNamespace()
        self.frames: List[str] = []
        self.accepted = False
        self.closed = False
        self.close_code = None
        self.fail_send = fail_send

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.fail_send:
            raise RuntimeError("socket gone")
        self.frames.append(text)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.close_code = code

    @property
    def messages(self) -> List[Any]:
        return [json.loads(f) for f in self.frames if f != HEARTBEAT]

    @property
    def last(self) -> Any:
        return self.messages[-1]

    def names(self) -> List[str]:
        return [m[0] for m in self.messages]

    def clear(self) -> None:
        self.frames.clear()


class FakeScheduler:
    def __init__(self):
        self.armed: List[int] = []
        self.pending = False

    def arm(self, delay_ms: int) -> bool:
        if self.pending:
            return False
        self.pending = True
        self.armed.append(delay_ms)
        return True

    def fire(self) -> None:
        self.pending = False

    def cancel(self) -> None:
        self.pending = False

    def close(self) -> None:
        self.pending = False


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def scheduler():
    return FakeScheduler()


@pytest.fixture()
def make_broker(clock, scheduler):
    def _make(**overrides) -> LobbyBroker:
        broker = LobbyBroker(make_settings(**overrides), clock=clock)
        broker.monitor.bind(scheduler)
        return broker

    return _make


@pytest.fixture()
def broker(make_broker):
    return make_broker()


async def connect(broker: LobbyBroker, ip: str = "10.0.0.1"):
    conn = FakeConnection()
    session = await broker.connect(conn, ip)
    return conn, session


async def send(broker: LobbyBroker, conn: FakeConnection, *items: Any) -> None:
    await broker.receive(conn, json.dumps(list(items)))


async def login(broker: LobbyBroker, ip: str = "10.0.0.1", key: str = "K1"):
    conn, session = await connect(broker, ip)
    await send(broker, conn, "server", "key", [key])
    return conn, session
