import pytest

from conftest import START, login, send
from relay_lobby.constants import DEFAULT_EVENT_AVATAR

HOUR = 3_600_000


def event(utc=START + HOUR, content="raid night", **extra):
    return {"utc": utc, "day": 3, "hour": 20, "content": content, **extra}


class TestCreateEvent:
    @pytest.mark.asyncio
    async def test_accepted_event_is_broadcast_to_lobby(self, broker):
        conn_a, a = await login(broker, key="A")
        conn_b, _ = await login(broker, ip="10.0.0.2", key="B")

        await send(broker, conn_a, "server", "events", event(nickname="Alice"), "A")

        assert conn_b.last[0] == "updateevents"
        [posted] = conn_b.last[1]
        assert posted["creator"] == "A"
        assert posted["members"] == ["A"]
        assert posted["nickname"] == "Alice"
        assert posted["avatar"] == DEFAULT_EVENT_AVATAR
        assert posted["utc"] == START + HOUR
        assert len(posted["id"]) == 10

    @pytest.mark.asyncio
    async def test_newest_event_comes_first(self, broker):
        conn, _ = await login(broker, key="A")

        await send(broker, conn, "server", "events", event(content="first"), "A")
        await send(broker, conn, "server", "events", event(content="second"), "A")

        assert [e.content for e in broker.board.live()] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_twenty_first_event_is_denied(self, broker):
        conn, _ = await login(broker, key="A")
        for n in range(20):
            await send(broker, conn, "server", "events", event(content=f"e{n}"), "A")
        before = broker.board.serialize()

        await send(broker, conn, "server", "events", event(content="one too many"), "A")

        assert conn.last == ["eventsdenied", "total"]
        assert broker.board.serialize() == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("utc", [START, START - 1, "tomorrow", None])
    async def test_past_or_invalid_time_is_denied(self, broker, utc):
        conn, _ = await login(broker, key="A")

        await send(broker, conn, "server", "events", event(utc=utc), "A")

        assert conn.last == ["eventsdenied", "time"]
        assert broker.board.live() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("utc", [float("inf"), float("nan")])
    async def test_non_finite_time_is_denied(self, broker, clock, utc):
        conn, session = await login(broker, key="A")

        changed = await broker.board.submit(session, event(utc=utc), "A")

        assert changed is False
        assert conn.last == ["eventsdenied", "time"]
        clock.advance(10**12)
        assert broker.board.live() == []

    @pytest.mark.asyncio
    async def test_extra_client_fields_are_kept(self, broker):
        conn_a, _ = await login(broker, key="A")
        conn_b, _ = await login(broker, ip="10.0.0.2", key="B")

        await send(broker, conn_a, "server", "events", event(mode="identity", creator="forged"), "A")

        [posted] = conn_b.last[1]
        assert posted["mode"] == "identity"
        assert posted["creator"] == "A"
        assert broker.board.live()[0].model_dump()["mode"] == "identity"

    @pytest.mark.asyncio
    async def test_banned_keyword_is_denied(self, broker):
        broker.bans.ban_keyword("cheat")
        conn, _ = await login(broker, key="A")

        await send(broker, conn, "server", "events", event(content="free cheats here"), "A")

        assert conn.last == ["eventsdenied", "ban"]

    @pytest.mark.asyncio
    async def test_incomplete_record_is_ignored(self, broker):
        conn, _ = await login(broker, key="A")
        conn.clear()

        await send(broker, conn, "server", "events", {"utc": START + HOUR, "content": "x"}, "A")

        assert conn.frames == []


class TestMembership:
    @pytest.mark.asyncio
    async def test_join_then_leave_until_empty_removes_event(self, broker):
        conn_a, _ = await login(broker, key="A")
        conn_b, _ = await login(broker, ip="10.0.0.2", key="B")
        await send(broker, conn_a, "server", "events", event(), "A")
        event_id = broker.board.live()[0].id

        await send(broker, conn_b, "server", "events", event_id, "B", "join")
        assert broker.board.live()[0].members == ["A", "B"]

        await send(broker, conn_a, "server", "events", event_id, "A", "leave")
        assert broker.board.live()[0].members == ["B"]

        await send(broker, conn_b, "server", "events", event_id, "B", "leave")
        assert broker.board.live() == []
        assert conn_a.last == ["updateevents", []]

    @pytest.mark.asyncio
    async def test_joining_twice_keeps_one_membership(self, broker):
        conn, _ = await login(broker, key="A")
        await send(broker, conn, "server", "events", event(), "A")
        event_id = broker.board.live()[0].id

        await send(broker, conn, "server", "events", event_id, "A", "join")

        assert broker.board.live()[0].members == ["A"]


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_event_disappears_from_next_read(self, broker, clock):
        conn, _ = await login(broker, key="A")
        await send(broker, conn, "server", "events", event(utc=START + 1_000), "A")

        clock.advance(1_000)

        assert broker.board.serialize() == []

    @pytest.mark.asyncio
    async def test_expired_events_do_not_count_toward_cap(self, broker, clock):
        conn, _ = await login(broker, key="A")
        for n in range(20):
            await send(broker, conn, "server", "events", event(utc=START + 1_000, content=f"e{n}"), "A")
        clock.advance(1_000)
        await send(broker, conn, "server", "status", None)

        await send(broker, conn, "server", "events", event(), "A")

        assert len(broker.board.live()) == 1


class TestEventAuth:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("claimed", ["B", 123, None])
    async def test_key_mismatch_bans_ip(self, broker, claimed):
        conn, session = await login(broker, ip="7.7.7.7", key="A")

        await send(broker, conn, "server", "events", event(), claimed)

        assert broker.bans.is_ip_banned("7.7.7.7")
        assert conn.closed
        assert broker.board.live() == []

    @pytest.mark.asyncio
    async def test_banned_key_is_rejected_even_if_validated(self, broker):
        conn, _ = await login(broker, ip="7.7.7.8", key="A")
        broker.bans.ban_key("A")

        await send(broker, conn, "server", "events", event(), "A")

        assert conn.closed
        assert broker.bans.is_ip_banned("7.7.7.8")
