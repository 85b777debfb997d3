"""
Tests for the realtime sync channel.
"""
import asyncio
import json

import pytest

from barista.client.realtime import (
    ConnectionState,
    RealtimeChannel,
    build_ws_url,
    compute_backoff,
    parse_message,
)
from barista.utils.exceptions import ProtocolError
from tests.fakes import FakeConnector, FakeScheduler, settle


def make_channel(connector, token="tok", **kwargs):
    channel = RealtimeChannel(
        "https://cafe.example",
        token_provider=lambda: token,
        connector=connector,
        **kwargs,
    )
    scheduler = FakeScheduler()
    channel._call_later = scheduler
    return channel, scheduler


class TestHelpers:
    def test_ws_url_mirrors_page_scheme(self):
        assert build_ws_url("https://cafe.example", "/ws", "a b") == "wss://cafe.example/ws?token=a+b"
        assert build_ws_url("http://localhost:5000/", "ws", "t") == "ws://localhost:5000/ws?token=t"

    def test_backoff_doubles_up_to_cap(self):
        delays = [compute_backoff(n, 1.0, 30.0) for n in range(7)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    @pytest.mark.parametrize("raw", ["{oops", "[1, 2]", '{"data": {}}', '{"type": ""}', b"\xff"])
    def test_parse_message_rejects_malformed_frames(self, raw):
        with pytest.raises(ProtocolError):
            parse_message(raw)

    def test_parse_message_accepts_envelope(self):
        message = parse_message('{"type": "new_order", "data": {"id": 1}, "extra": true}')
        assert message.type == "new_order"
        assert message.data == {"id": 1}


class TestSubscriptions:
    """Test lazy open and reference counting."""

    @pytest.mark.asyncio
    async def test_first_subscriber_opens_once(self):
        connector = FakeConnector()
        channel, _ = make_channel(connector)

        channel.subscribe(lambda m: None)
        channel.subscribe(lambda m: None)
        channel.open()
        await settle()

        assert len(connector.urls) == 1
        assert connector.urls[0] == "wss://cafe.example/ws?token=tok"
        assert channel.state == ConnectionState.OPEN

    @pytest.mark.asyncio
    async def test_last_unsubscribe_closes_intentionally(self):
        connector = FakeConnector()
        channel, scheduler = make_channel(connector)
        first = channel.subscribe(lambda m: None)
        second = channel.subscribe(lambda m: None)
        await settle()

        first()
        await settle()
        assert channel.state == ConnectionState.OPEN

        second()
        await settle()
        assert connector.sockets[0].closed
        assert channel.state == ConnectionState.DISCONNECTED
        assert scheduler.handles == []

    @pytest.mark.asyncio
    async def test_no_token_no_socket(self):
        connector = FakeConnector()
        channel, _ = make_channel(connector, token=None)
        channel.subscribe(lambda m: None)
        await settle()
        assert connector.urls == []
        assert channel.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_resubscribe_in_same_tick_keeps_socket(self):
        connector = FakeConnector()
        channel, scheduler = make_channel(connector)
        unsubscribe = channel.subscribe(lambda m: None)
        await settle()

        unsubscribe()
        channel.subscribe(lambda m: None)
        await settle()

        assert channel.state == ConnectionState.OPEN
        assert len(connector.sockets) == 1
        assert not connector.sockets[0].closed
        assert scheduler.handles == []

    @pytest.mark.asyncio
    async def test_resubscribe_while_closing_reopens(self):
        connector = FakeConnector()
        channel, scheduler = make_channel(connector)
        unsubscribe = channel.subscribe(lambda m: None)
        await settle()

        unsubscribe()
        await asyncio.sleep(0)
        assert channel.state == ConnectionState.CLOSING
        channel.subscribe(lambda m: None)
        await settle()

        assert connector.sockets[0].closed
        assert len(connector.sockets) == 2
        assert channel.state == ConnectionState.OPEN
        assert scheduler.handles == []

    @pytest.mark.asyncio
    async def test_retrigger_during_close_reopens_after_it(self):
        connector = FakeConnector()
        channel, _ = make_channel(connector)
        channel.subscribe(lambda m: None)
        await settle()

        closing = asyncio.create_task(channel.close())
        await asyncio.sleep(0)
        channel.retrigger()
        await closing
        await settle()

        assert connector.sockets[0].closed
        assert len(connector.sockets) == 2
        assert channel.state == ConnectionState.OPEN


class TestDispatch:
    """Test frame delivery."""

    @pytest.mark.asyncio
    async def test_malformed_frame_is_dropped_without_teardown(self):
        connector = FakeConnector()
        channel, _ = make_channel(connector)
        received = []
        channel.subscribe(received.append)
        await settle()

        socket = connector.sockets[0]
        socket.push("{definitely not json")
        socket.push(json.dumps({"type": "new_order", "data": {"id": 3}}))
        await settle()

        assert [m.type for m in received] == ["new_order"]
        assert channel.state == ConnectionState.OPEN

    @pytest.mark.asyncio
    async def test_subscriber_errors_are_isolated(self):
        connector = FakeConnector()
        channel, _ = make_channel(connector)
        received = []

        def broken(message):
            raise RuntimeError("subscriber bug")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        await settle()

        connector.sockets[0].push(json.dumps({"type": "refresh"}))
        await settle()

        assert len(received) == 1
        assert channel.state == ConnectionState.OPEN

    @pytest.mark.asyncio
    async def test_send_when_open(self):
        connector = FakeConnector()
        channel, _ = make_channel(connector)
        channel.subscribe(lambda m: None)
        await settle()

        assert await channel.send("ping") is True
        assert json.loads(connector.sockets[0].sent[0]) == {"type": "ping", "data": None}


class TestReconnect:
    """Test backoff and intentional close."""

    @pytest.mark.asyncio
    async def test_delays_grow_to_cap_then_stop(self):
        connector = FakeConnector(failures=100)
        channel, scheduler = make_channel(
            connector, base_delay=1.0, max_delay=5.0, max_attempts=5
        )
        channel.subscribe(lambda m: None)
        await settle()

        while scheduler.active:
            handle = scheduler.active[-1]
            handle.cancelled = True
            handle.callback()
            await settle()

        assert scheduler.delays == [1.0, 2.0, 4.0, 5.0, 5.0]
        assert scheduler.delays == sorted(scheduler.delays)
        assert len(connector.urls) == 6
        assert channel.state == ConnectionState.DISCONNECTED
        assert not channel.reconnect_pending

    @pytest.mark.asyncio
    async def test_server_drop_schedules_reconnect(self):
        connector = FakeConnector()
        channel, scheduler = make_channel(connector)
        channel.subscribe(lambda m: None)
        await settle()

        connector.sockets[0].drop()
        await settle()

        assert channel.state == ConnectionState.DISCONNECTED
        assert scheduler.delays == [1.0]

        scheduler.fire_last()
        await settle()
        assert channel.state == ConnectionState.OPEN
        assert channel.reconnect_attempt == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_cancels_pending_reconnect(self):
        connector = FakeConnector(failures=1)
        channel, scheduler = make_channel(connector)
        unsubscribe = channel.subscribe(lambda m: None)
        await settle()
        assert channel.reconnect_pending

        unsubscribe()
        await settle()

        assert scheduler.handles[0].cancelled
        assert not channel.reconnect_pending
        assert len(connector.urls) == 1

    @pytest.mark.asyncio
    async def test_intentional_close_never_reconnects(self):
        connector = FakeConnector()
        channel, scheduler = make_channel(connector)
        channel.subscribe(lambda m: None)
        await settle()

        await channel.close()
        await settle()

        assert connector.sockets[0].closed
        assert scheduler.handles == []
        assert channel.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_retrigger_after_giving_up(self):
        connector = FakeConnector(failures=1)
        channel, scheduler = make_channel(connector, max_attempts=0)
        channel.subscribe(lambda m: None)
        await settle()
        assert scheduler.handles == []

        channel.retrigger()
        await settle()
        assert channel.state == ConnectionState.OPEN
