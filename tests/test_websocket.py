"""Tests for the EventSub WebSocket session manager."""

import asyncio
from typing import List

import pytest

from conftest import (
    FakeConnector,
    FakeWebSocket,
    follow_event,
    keepalive_frame,
    no_sleep,
    notification_frame,
    reconnect_frame,
    revocation_frame,
    welcome_frame,
)
from twitch_eventsub.envelope import Revocation
from twitch_eventsub.errors import SessionClosedError
from twitch_eventsub.events import Event, RecoverableError
from twitch_eventsub.websocket import DEFAULT_URL, SessionManager, SessionStatus

RECONNECT_URL = "wss://eventsub.wss.twitch.tv/ws?id=reconnect"


def follow(message_id: str, user_id: str = "1234") -> str:
    return notification_frame("channel.follow", "2", follow_event(user_id), message_id)


def manager_for(connector: FakeConnector, **kwargs) -> SessionManager:
    kwargs.setdefault("sleep", no_sleep)
    kwargs.setdefault("drain_timeout", 0.05)
    return SessionManager(connect=connector, **kwargs)


async def collect(manager: SessionManager, count: int) -> List:
    received = []
    async for delivery in manager.events():
        received.append(delivery)
        if len(received) == count:
            break
    return received


class TestSessionBasics:
    """Welcome handling and event delivery on a single connection."""

    @pytest.mark.asyncio
    async def test_welcome_then_notification(self):
        conn = FakeWebSocket([welcome_frame("session-1"), keepalive_frame(), follow("m1")])
        connector = FakeConnector([conn])
        manager = manager_for(connector)
        welcomes = []
        manager.add_callback("welcome", lambda session, reconnected: welcomes.append((session.id, reconnected)))

        manager.start()
        received = await asyncio.wait_for(collect(manager, 1), 2)

        assert isinstance(received[0], Event)
        assert received[0].variant == "ChannelFollowV2"
        assert received[0].message_id == "m1"
        assert manager.session_id == "session-1"
        assert manager.status is SessionStatus.ACTIVE
        assert welcomes == [("session-1", False)]
        assert connector.urls == [DEFAULT_URL]

        await manager.close()
        assert manager.status is SessionStatus.CLOSED
        assert conn.closed

    @pytest.mark.asyncio
    async def test_non_welcome_first_frame_redials(self):
        bad = FakeWebSocket([keepalive_frame()], name="bad")
        good = FakeWebSocket([welcome_frame("session-2"), follow("m1")], name="good")
        connector = FakeConnector([bad, good])
        manager = manager_for(connector)

        manager.start()
        received = await asyncio.wait_for(collect(manager, 1), 2)

        assert received[0].message_id == "m1"
        assert bad.closed
        assert manager.session_id == "session-2"
        assert connector.urls == [DEFAULT_URL, DEFAULT_URL]
        await manager.close()

    @pytest.mark.asyncio
    async def test_revocation_is_delivered(self):
        conn = FakeWebSocket([welcome_frame(), revocation_frame("channel.follow", "2")])
        manager = manager_for(FakeConnector([conn]))

        manager.start()
        received = await asyncio.wait_for(collect(manager, 1), 2)

        assert isinstance(received[0], Revocation)
        assert received[0].reason == "authorization_revoked"
        assert received[0].event_type == "channel.follow"
        await manager.close()

    @pytest.mark.asyncio
    async def test_schema_error_is_recoverable(self):
        event = follow_event()
        del event["user_id"]
        conn = FakeWebSocket([
            welcome_frame(),
            notification_frame("channel.follow", "2", event, "broken"),
            follow("m2"),
        ])
        manager = manager_for(FakeConnector([conn]))

        manager.start()
        received = await asyncio.wait_for(collect(manager, 2), 2)

        assert isinstance(received[0], RecoverableError)
        assert received[0].message_id == "broken"
        assert received[1].message_id == "m2"
        await manager.close()

    @pytest.mark.asyncio
    async def test_context_manager(self):
        conn = FakeWebSocket([welcome_frame(), follow("m1")])

        async with manager_for(FakeConnector([conn])) as manager:
            received = await asyncio.wait_for(collect(manager, 1), 2)
            assert received[0].message_id == "m1"

        assert manager.status is SessionStatus.CLOSED
        assert conn.closed

    @pytest.mark.asyncio
    async def test_events_end_after_close(self):
        conn = FakeWebSocket([welcome_frame()])
        manager = manager_for(FakeConnector([conn]))

        manager.start()
        await asyncio.sleep(0.01)
        await manager.close()

        received = await asyncio.wait_for(collect(manager, 10), 2)
        assert received == []


class TestReconnect:
    """Server-requested reconnects and dead connections."""

    @pytest.mark.asyncio
    async def test_reconnect_keeps_order_and_overlaps_connections(self):
        log: List[str] = []
        conn1 = FakeWebSocket(
            [welcome_frame("session-1"), follow("m1"), follow("m2"), reconnect_frame(RECONNECT_URL), follow("m3")],
            name="conn1",
            log=log,
        )
        conn2 = FakeWebSocket(
            [welcome_frame("session-1", message_id="welcome-2"), follow("m4")],
            name="conn2",
            log=log,
            connect_delay=0.05,
        )
        connector = FakeConnector([conn1, conn2])
        manager = manager_for(connector)
        welcomes = []
        manager.add_callback("welcome", lambda session, reconnected: welcomes.append(reconnected))

        manager.start()
        received = await asyncio.wait_for(collect(manager, 4), 2)

        assert [d.message_id for d in received] == ["m1", "m2", "m3", "m4"]
        assert connector.urls == [DEFAULT_URL, RECONNECT_URL]
        assert log.index("conn2 recv session_welcome") < log.index("conn1 closed")
        assert welcomes == [False, True]
        assert manager.reconnect_count == 1
        assert manager.status is SessionStatus.ACTIVE
        await manager.close()

    @pytest.mark.asyncio
    async def test_keepalive_miss_redials_default_url(self):
        conn1 = FakeWebSocket([welcome_frame("session-1", keepalive=0.05)], name="conn1")
        conn2 = FakeWebSocket([welcome_frame("session-2", keepalive=10), follow("m1")], name="conn2")
        connector = FakeConnector([conn1, conn2])
        manager = manager_for(connector, keepalive_grace=0)
        statuses = []
        manager.add_callback("status", statuses.append)

        manager.start()
        received = await asyncio.wait_for(collect(manager, 1), 2)

        assert received[0].message_id == "m1"
        assert manager.keepalive_misses == 1
        assert statuses.count(SessionStatus.RECONNECTING) == 1
        assert connector.urls == [DEFAULT_URL, DEFAULT_URL]
        assert conn1.closed
        assert manager.session_id == "session-2"
        await manager.close()

    @pytest.mark.asyncio
    async def test_closed_connection_redials(self):
        conn1 = FakeWebSocket([welcome_frame("session-1"), follow("m1")], name="conn1")
        conn2 = FakeWebSocket([welcome_frame("session-2"), follow("m2")], name="conn2")
        manager = manager_for(FakeConnector([conn1, conn2]))

        manager.start()
        first = await asyncio.wait_for(collect(manager, 1), 2)
        await conn1.close()
        second = await asyncio.wait_for(collect(manager, 1), 2)

        assert first[0].message_id == "m1"
        assert second[0].message_id == "m2"
        assert manager.reconnect_count == 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_exhausted_retries_close_the_session(self):
        connector = FakeConnector([OSError("refused")] * 3)
        manager = manager_for(connector, max_attempts=3)

        manager.start()
        with pytest.raises(SessionClosedError):
            await asyncio.wait_for(collect(manager, 1), 2)

        assert manager.status is SessionStatus.CLOSED
        assert len(connector.urls) == 3

    @pytest.mark.asyncio
    async def test_backoff_delays(self):
        delays = []

        async def record_sleep(delay):
            delays.append(delay)

        connector = FakeConnector([OSError("refused")] * 5)
        manager = SessionManager(connect=connector, max_attempts=5, base_delay=1.0, max_delay=4.0,
                                 sleep=record_sleep)

        with pytest.raises(SessionClosedError):
            await manager.run()

        assert delays == [1.0, 2.0, 4.0, 4.0]

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            SessionManager(max_attempts=0)


class TestBackpressure:

    @pytest.mark.asyncio
    async def test_full_queue_pauses_reading(self):
        conn = FakeWebSocket([welcome_frame(), follow("m1"), follow("m2"), follow("m3")])
        manager = manager_for(FakeConnector([conn]), queue_size=1)

        manager.start()
        await asyncio.sleep(0.05)

        # m1 queued, m2 waiting for room, m3 still unread
        assert conn.pending == 1

        received = await asyncio.wait_for(collect(manager, 3), 2)
        assert [d.message_id for d in received] == ["m1", "m2", "m3"]
        await manager.close()


class TestHandover:
    """Frames in flight on the old connection and reconnects without a URL."""

    @pytest.mark.asyncio
    async def test_old_connection_is_drained_before_close(self):
        old = [follow(f"old{i}") for i in range(20)]
        conn1 = FakeWebSocket([welcome_frame("session-1"), reconnect_frame(RECONNECT_URL)] + old, name="conn1")
        conn2 = FakeWebSocket([welcome_frame("session-1", message_id="welcome-2"), follow("new0")], name="conn2")
        manager = manager_for(FakeConnector([conn1, conn2]))

        manager.start()
        received = await asyncio.wait_for(collect(manager, 21), 2)

        assert [d.message_id for d in received] == [f"old{i}" for i in range(20)] + ["new0"]
        assert conn1.closed
        assert conn1.pending <= 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_reconnect_without_url_starts_new_session(self):
        conn1 = FakeWebSocket([welcome_frame("session-1"), reconnect_frame(None)], name="conn1")
        conn2 = FakeWebSocket([welcome_frame("session-2"), follow("m1")], name="conn2")
        connector = FakeConnector([conn1, conn2])
        manager = manager_for(connector)
        welcomes = []
        manager.add_callback("welcome", lambda session, reconnected: welcomes.append(reconnected))

        manager.start()
        received = await asyncio.wait_for(collect(manager, 1), 2)

        assert received[0].message_id == "m1"
        assert welcomes == [False, False]
        assert connector.urls == [DEFAULT_URL, DEFAULT_URL]
        assert conn1.closed
        await manager.close()


class TestShutdown:
    """close() releases every connection, whatever the session is doing."""

    @pytest.mark.asyncio
    async def test_close_while_waiting_for_welcome(self):
        conn = FakeWebSocket([], name="conn")
        connector = FakeConnector([conn])
        manager = manager_for(connector)

        manager.start()
        await asyncio.sleep(0.02)
        assert connector.urls == [DEFAULT_URL]
        await manager.close()

        assert conn.closed
        assert manager.status is SessionStatus.CLOSED

    @pytest.mark.asyncio
    async def test_close_during_handover(self):
        conn1 = FakeWebSocket([welcome_frame("session-1"), reconnect_frame(RECONNECT_URL)], name="conn1")
        conn2 = FakeWebSocket([], name="conn2")
        connector = FakeConnector([conn1, conn2])
        manager = manager_for(connector)

        manager.start()
        await asyncio.sleep(0.02)
        assert connector.urls == [DEFAULT_URL, RECONNECT_URL]
        assert manager.status is SessionStatus.RECONNECTING
        await manager.close()

        assert conn1.closed
        assert conn2.closed
        assert manager.status is SessionStatus.CLOSED
