import pytest

from conftest import FakeConnection, connect, login, send
from relay_lobby.constants import ATTACHMENT_KEY, DEFAULT_NICKNAME, POLICY_VIOLATION
from relay_lobby.registry import ConnectionRegistry, read_attachment


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_sends_roomlist_snapshot(self, broker):
        conn, session = await connect(broker)

        assert conn.accepted
        assert session.authenticated is False
        assert conn.messages == [
            ["roomlist", [], [], [[DEFAULT_NICKNAME, "", True, None, session.id, None]], session.id]
        ]

    @pytest.mark.asyncio
    async def test_connect_writes_durable_attachment(self, broker, clock):
        conn, session = await connect(broker, ip="1.2.3.4")

        raw = getattr(conn.state, ATTACHMENT_KEY)
        assert raw["session_id"] == session.id
        assert raw["ip"] == "1.2.3.4"
        assert raw["connected_at"] == clock.now
        assert raw["authenticated"] is False

    @pytest.mark.asyncio
    async def test_banned_ip_is_refused_before_snapshot(self, broker):
        broker.bans.ban_ip("6.6.6.6")
        conn = FakeConnection()

        session = await broker.connect(conn, "6.6.6.6")

        assert session is None
        assert not conn.accepted
        assert conn.closed and conn.close_code == POLICY_VIOLATION
        assert conn.frames == []
        assert len(broker.registry) == 0

    @pytest.mark.asyncio
    async def test_session_ids_are_ten_digit_strings(self, broker):
        _, first = await connect(broker)
        _, second = await connect(broker)

        assert first.id != second.id
        for session in (first, second):
            assert len(session.id) == 10 and session.id.isdigit()

    @pytest.mark.asyncio
    async def test_key_marks_attachment_authenticated(self, broker):
        conn, session = await login(broker, key="K9")

        raw = getattr(conn.state, ATTACHMENT_KEY)
        assert session.authenticated is True
        assert raw["authenticated"] is True
        assert raw["auth_key"] == "K9"


class TestRehydration:
    @pytest.mark.asyncio
    async def test_evicted_session_is_rebuilt_from_attachment(self, broker):
        conn, session = await login(broker, key="K1")
        await broker.evict()
        assert len(broker.registry) == 0

        await send(broker, conn, "server", "create", "K1", "Alice", "av", {}, None)

        rebuilt = broker.registry.get(session.id)
        assert rebuilt is not None and rebuilt is not session
        assert rebuilt.authenticated is True
        assert rebuilt.auth_key == "K1"
        assert conn.last == ["createroom", "K1"]

    def test_resolve_is_idempotent(self, clock):
        registry = ConnectionRegistry(clock)
        conn = FakeConnection()
        session = registry.register(conn, "1.1.1.1")
        session.nickname = "kept"

        assert registry.resolve(conn) is session
        registry.evict()
        rebuilt = registry.resolve(conn)
        assert registry.resolve(conn) is rebuilt
        assert len(registry) == 1
        assert rebuilt.nickname == DEFAULT_NICKNAME

    def test_released_connection_is_not_resurrected(self, clock):
        registry = ConnectionRegistry(clock)
        conn = FakeConnection()
        session = registry.register(conn, "1.1.1.1")

        registry.remove(session)

        assert registry.resolve(conn) is None
        assert len(registry) == 0

    def test_malformed_attachment_resolves_to_nothing(self, clock):
        registry = ConnectionRegistry(clock)
        conn = FakeConnection()
        registry.register(conn, "1.1.1.1")
        setattr(conn.state, ATTACHMENT_KEY, {"session_id": None})

        assert read_attachment(conn) is None
        assert registry.resolve(conn) is None


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_lobby_disconnect_broadcasts_client_list(self, broker):
        conn_a, a = await connect(broker)
        conn_b, b = await connect(broker)
        conn_a.clear()

        await broker.disconnect(conn_b)

        assert broker.registry.get(b.id) is None
        assert conn_a.last[0] == "updateclients"
        assert [entry[4] for entry in conn_a.last[1]] == [a.id]

    @pytest.mark.asyncio
    async def test_disconnect_twice_is_harmless(self, broker):
        conn, _ = await connect(broker)
        await broker.disconnect(conn)
        await broker.disconnect(conn)

        assert len(broker.registry) == 0
        assert broker.registry.connections == {}
