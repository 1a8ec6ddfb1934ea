"""
Unit Tests for Paradex WebSocket Manager

These tests drive WebsocketManager against an in-memory socket and verify:
- Fan-out: one subscribe / unsubscribe request per wire channel
- Connected is delivered once per confirmation and replayed to late joiners
- Disconnect handling: Disconnected to everyone, one resubscribe per channel
- Heartbeat: the socket is closed after consecutive unanswered pings
- Callback failures do not affect other subscribers
- Commands after stop raise WebSocketSendError
- Private sessions authenticate before subscribing

Run with:
    pytest tests/unit/test_ws_client.py -v
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import WSMsgType

from core.errors import WebSocketSendError
from exchanges.paradex.subscriptions import BboSubscription, Data
from exchanges.paradex.ws_client import WebsocketManager
from exchanges.paradex.ws_types import (
    BboChannel,
    BboMessage,
    Connected,
    Disconnected,
    ErrorMessage,
    FillsChannel,
    Identifier,
    Unsubscribed,
)


BBO_DATA = {
    "ask": "30130.15",
    "ask_size": "0.05",
    "bid": "30112.22",
    "bid_size": "0.04",
    "last_updated_at": 1681493939981,
    "market": "BTC-USD-PERP",
}


# ============================================
# Mock WebSocket Helpers
# ============================================

class MockWSMessage:
    """Mock aiohttp WebSocket message"""

    def __init__(self, msg_type, data=None):
        self.type = msg_type
        self.data = data


class FakeWebSocket:
    """In-memory stand-in for aiohttp.ClientWebSocketResponse"""

    def __init__(self, auto_pong: bool = False):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent = []
        self.pings = 0
        self.closed = False
        self.auto_pong = auto_pong

    async def receive(self):
        return await self.incoming.get()

    async def send_str(self, data: str):
        self.sent.append(json.loads(data))

    async def ping(self, message: bytes = b""):
        self.pings += 1
        if self.auto_pong:
            self.incoming.put_nowait(MockWSMessage(WSMsgType.PONG))

    async def pong(self, message: bytes = b""):
        pass

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(MockWSMessage(WSMsgType.CLOSED))

    def push(self, payload: dict):
        self.incoming.put_nowait(MockWSMessage(WSMsgType.TEXT, json.dumps(payload)))

    def confirm(self, request_id: int, channel: str):
        self.push({"jsonrpc": "2.0", "id": request_id, "result": {"channel": channel}})

    def notify(self, channel: str, data: dict):
        self.push({
            "jsonrpc": "2.0",
            "method": "subscription",
            "params": {"channel": channel, "data": data},
        })

    def drop(self):
        self.incoming.put_nowait(MockWSMessage(WSMsgType.CLOSED))

    def frames(self, method: str):
        return [frame for frame in self.sent if frame["method"] == method]


async def wait_until(predicate, timeout: float = 1.0):
    """Poll predicate until it holds or fail after timeout"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


async def settle():
    """Let the read loop drain whatever is queued"""
    await asyncio.sleep(0.02)


@pytest_asyncio.fixture
async def make_manager():
    """Factory starting managers on a mocked session; stops them on teardown"""
    managers = []

    async def factory(*sockets, **kwargs):
        session = MagicMock()
        session.ws_connect = AsyncMock(side_effect=list(sockets))
        kwargs.setdefault("heartbeat_interval", 3600)
        kwargs.setdefault("reconnect_delay", 0)
        manager = WebsocketManager("wss://ws.test/v1", session=session, **kwargs)
        await manager.start()
        managers.append(manager)
        return manager

    yield factory

    for manager in managers:
        await manager.__aexit__(None, None, None)


# ============================================
# Tests for Lifecycle
# ============================================

class TestLifecycle:

    @pytest.mark.asyncio
    async def test_connects_without_autoping(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        await wait_until(lambda: manager.session.ws_connect.await_count == 1)
        manager.session.ws_connect.assert_awaited_with("wss://ws.test/v1", autoping=False)

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, make_manager):
        manager = await make_manager(FakeWebSocket())
        with pytest.raises(RuntimeError, match="already started"):
            await manager.start()

    @pytest.mark.asyncio
    async def test_commands_after_stop_raise(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        await wait_until(lambda: manager.session.ws_connect.await_count == 1)
        await settle()
        await manager.stop()
        await manager.wait_closed()

        assert ws.closed
        assert not manager.is_running
        with pytest.raises(WebSocketSendError):
            await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        with pytest.raises(WebSocketSendError):
            await manager.unsubscribe(Identifier(1))
        with pytest.raises(WebSocketSendError):
            await manager.stop()

    @pytest.mark.asyncio
    async def test_subscribe_before_start_raises(self):
        manager = WebsocketManager("wss://ws.test/v1", session=MagicMock())
        with pytest.raises(WebSocketSendError):
            await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)

    @pytest.mark.asyncio
    async def test_retries_failed_connection(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(aiohttp.ClientConnectionError("refused"), ws)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await wait_until(lambda: len(ws.frames("subscribe")) == 1)
        assert manager.session.ws_connect.await_count == 2

    @pytest.mark.asyncio
    async def test_identifiers_are_unique_from_one(self, make_manager):
        manager = await make_manager(FakeWebSocket())
        first = await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        second = await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        assert first == Identifier(1)
        assert second == Identifier(2)


# ============================================
# Tests for Fan-out and Confirmation
# ============================================

class TestFanOut:

    @pytest.mark.asyncio
    async def test_single_subscribe_per_channel(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        first = await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await wait_until(lambda: len(ws.sent) >= 1)
        await settle()

        subscribes = ws.frames("subscribe")
        assert len(subscribes) == 1
        assert subscribes[0]["id"] == first.value
        assert subscribes[0]["params"] == {"channel": "bbo.BTC-USD-PERP"}

    @pytest.mark.asyncio
    async def test_confirmation_delivered_once(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        a, b = [], []
        first = await manager.subscribe(BboChannel("BTC-USD-PERP"), a.append)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), b.append)
        await wait_until(lambda: len(ws.sent) == 1)

        ws.confirm(first.value, "bbo.BTC-USD-PERP")
        ws.confirm(first.value, "bbo.BTC-USD-PERP")
        await wait_until(lambda: a and b)
        await settle()

        assert a == [Connected()]
        assert b == [Connected()]

    @pytest.mark.asyncio
    async def test_late_joiner_gets_connected(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        first = await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await wait_until(lambda: len(ws.sent) == 1)
        ws.confirm(first.value, "bbo.BTC-USD-PERP")
        await settle()

        late = []
        await manager.subscribe(BboChannel("BTC-USD-PERP"), late.append)
        await wait_until(lambda: late)
        assert late == [Connected()]
        assert len(ws.frames("subscribe")) == 1

    @pytest.mark.asyncio
    async def test_notification_fans_out(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        a, b = [], []
        await manager.subscribe(BboChannel("BTC-USD-PERP"), a.append)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), b.append)
        await wait_until(lambda: len(ws.sent) == 1)

        ws.notify("bbo.BTC-USD-PERP", BBO_DATA)
        await wait_until(lambda: a and b)

        assert isinstance(a[0], BboMessage)
        assert a[0] == b[0]
        assert a[0].data.ask == pytest.approx(30130.15)

    @pytest.mark.asyncio
    async def test_undecodable_notification_is_error_message(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        received = []
        await manager.subscribe(BboChannel("BTC-USD-PERP"), received.append)
        await wait_until(lambda: len(ws.sent) == 1)

        ws.notify("bbo.BTC-USD-PERP", {"bid": "oops"})
        await wait_until(lambda: received)
        assert isinstance(received[0], ErrorMessage)

    @pytest.mark.asyncio
    async def test_typed_subscription(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        received = []
        await manager.subscribe_typed(BboSubscription("BTC-USD-PERP"), received.append)
        await wait_until(lambda: len(ws.sent) == 1)

        ws.notify("bbo.BTC-USD-PERP", BBO_DATA)
        await wait_until(lambda: received)
        assert isinstance(received[0], Data)
        assert received[0].payload.market == "BTC-USD-PERP"

    @pytest.mark.asyncio
    async def test_callback_exception_is_isolated(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)

        def broken(message):
            raise ValueError("subscriber bug")

        received = []
        await manager.subscribe(BboChannel("BTC-USD-PERP"), broken)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), received.append)
        await wait_until(lambda: len(ws.sent) == 1)

        ws.notify("bbo.BTC-USD-PERP", BBO_DATA)
        ws.notify("bbo.BTC-USD-PERP", BBO_DATA)
        await wait_until(lambda: len(received) == 2)
        assert manager.is_running

    @pytest.mark.asyncio
    async def test_submit_from_another_thread(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        identifier = await asyncio.to_thread(
            asyncio.run, manager.subscribe(FillsChannel(), lambda m: None)
        )
        await wait_until(lambda: len(ws.sent) == 1)
        assert ws.sent[0]["id"] == identifier.value
        assert ws.sent[0]["params"] == {"channel": "fills.ALL"}


# ============================================
# Tests for Unsubscribe
# ============================================

class TestUnsubscribe:

    @pytest.mark.asyncio
    async def test_last_subscriber_sends_unsubscribe(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        a, b = [], []
        first = await manager.subscribe(BboChannel("BTC-USD-PERP"), a.append)
        second = await manager.subscribe(BboChannel("BTC-USD-PERP"), b.append)

        await manager.unsubscribe(first)
        await wait_until(lambda: a)
        assert a == [Unsubscribed()]
        assert ws.frames("unsubscribe") == []

        await manager.unsubscribe(second)
        await wait_until(lambda: b)
        assert b == [Unsubscribed()]

        unsubscribes = ws.frames("unsubscribe")
        assert len(unsubscribes) == 1
        assert unsubscribes[0]["id"] == second.value
        assert unsubscribes[0]["params"] == {"channel": "bbo.BTC-USD-PERP"}

    @pytest.mark.asyncio
    async def test_unknown_identifier_is_ignored(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        await manager.unsubscribe(Identifier(999))
        await settle()
        assert ws.sent == []
        assert manager.is_running

    @pytest.mark.asyncio
    async def test_no_events_after_unsubscribe(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        received = []
        identifier = await manager.subscribe(BboChannel("BTC-USD-PERP"), received.append)
        await manager.unsubscribe(identifier)
        await wait_until(lambda: received)

        ws.notify("bbo.BTC-USD-PERP", BBO_DATA)
        ws.confirm(identifier.value, "bbo.BTC-USD-PERP")
        await settle()
        assert received == [Unsubscribed()]

    @pytest.mark.asyncio
    async def test_resubscribe_after_unsubscribe_sends_new_request(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        first = await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await manager.unsubscribe(first)
        second = await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await wait_until(lambda: len(ws.sent) == 3)

        assert [frame["method"] for frame in ws.sent] == ["subscribe", "unsubscribe", "subscribe"]
        assert ws.sent[2]["id"] == second.value


# ============================================
# Tests for Reconnection and Heartbeat
# ============================================

class TestReconnect:

    @pytest.mark.asyncio
    async def test_disconnect_notifies_and_resubscribes_once_per_channel(self, make_manager):
        ws1, ws2 = FakeWebSocket(), FakeWebSocket()
        manager = await make_manager(ws1, ws2)
        a, b, c = [], [], []
        bbo_id = await manager.subscribe(BboChannel("BTC-USD-PERP"), a.append)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), b.append)
        fills_id = await manager.subscribe(FillsChannel(), c.append)
        await wait_until(lambda: len(ws1.sent) == 2)

        ws1.confirm(bbo_id.value, "bbo.BTC-USD-PERP")
        await wait_until(lambda: a and b)

        ws1.drop()
        await wait_until(lambda: len(ws2.sent) == 2)

        assert ws1.closed
        assert a == [Connected(), Disconnected()]
        assert b == [Connected(), Disconnected()]
        assert c == [Disconnected()]
        assert sorted((f["id"], f["params"]["channel"]) for f in ws2.frames("subscribe")) == [
            (bbo_id.value, "bbo.BTC-USD-PERP"),
            (fills_id.value, "fills.ALL"),
        ]

        ws2.confirm(bbo_id.value, "bbo.BTC-USD-PERP")
        await wait_until(lambda: len(a) == 3)
        assert a[-1] == Connected()
        assert b[-1] == Connected()

    @pytest.mark.asyncio
    async def test_heartbeat_closes_silent_connection(self, make_manager):
        ws1, ws2 = FakeWebSocket(), FakeWebSocket(auto_pong=True)
        manager = await make_manager(ws1, ws2, heartbeat_interval=0.01, max_missed_pongs=3)
        received = []
        await manager.subscribe(BboChannel("BTC-USD-PERP"), received.append)

        await wait_until(lambda: ws1.closed)
        assert ws1.pings == 2
        await wait_until(lambda: Disconnected() in received)
        await wait_until(lambda: len(ws2.frames("subscribe")) == 1)

    @pytest.mark.asyncio
    async def test_pongs_keep_connection_alive(self, make_manager):
        ws1, ws2 = FakeWebSocket(auto_pong=True), FakeWebSocket()
        manager = await make_manager(ws1, ws2, heartbeat_interval=0.01, max_missed_pongs=3)
        await wait_until(lambda: ws1.pings >= 6)
        assert not ws1.closed
        assert manager.session.ws_connect.await_count == 1

    @pytest.mark.asyncio
    async def test_stale_unsubscribe_ack_is_ignored(self, make_manager):
        ws = FakeWebSocket()
        manager = await make_manager(ws)
        received = []
        first = await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await manager.unsubscribe(first)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), received.append)
        await wait_until(lambda: len(ws.sent) == 3)

        # Ack of the unsubscribe request still carries the channel name
        ws.confirm(first.value, "bbo.BTC-USD-PERP")
        await settle()
        assert received == []


class TestPrivateSession:

    @pytest.mark.asyncio
    async def test_authenticates_on_connect(self, make_manager):
        rest_client = MagicMock()
        rest_client.is_private = True
        rest_client.jwt = AsyncMock(return_value="jwt-token")

        ws = FakeWebSocket()
        manager = await make_manager(ws, rest_client=rest_client)
        await manager.subscribe(FillsChannel(), lambda m: None)
        await wait_until(lambda: len(ws.sent) == 2)

        assert ws.sent[0] == {
            "jsonrpc": "2.0",
            "id": 0,
            "method": "auth",
            "params": {"bearer": "jwt-token"},
        }
        assert ws.sent[1]["method"] == "subscribe"

    @pytest.mark.asyncio
    async def test_reauthenticates_after_reconnect(self, make_manager):
        rest_client = MagicMock()
        rest_client.is_private = True
        rest_client.jwt = AsyncMock(side_effect=["jwt-1", "jwt-2"])

        ws1, ws2 = FakeWebSocket(), FakeWebSocket()
        manager = await make_manager(ws1, ws2, rest_client=rest_client)
        await manager.subscribe(FillsChannel(), lambda m: None)
        await wait_until(lambda: len(ws1.sent) == 2)

        ws1.drop()
        await wait_until(lambda: len(ws2.sent) == 2)

        assert ws2.sent[0] == {
            "jsonrpc": "2.0",
            "id": 0,
            "method": "auth",
            "params": {"bearer": "jwt-2"},
        }
        assert ws2.sent[1]["method"] == "subscribe"
        assert ws2.sent[1]["params"]["channel"] == "fills.ALL"
        assert rest_client.jwt.await_count == 2

    @pytest.mark.asyncio
    async def test_public_rest_client_does_not_authenticate(self, make_manager):
        rest_client = MagicMock()
        rest_client.is_private = False
        rest_client.jwt = AsyncMock()

        ws = FakeWebSocket()
        manager = await make_manager(ws, rest_client=rest_client)
        await manager.subscribe(BboChannel("BTC-USD-PERP"), lambda m: None)
        await wait_until(lambda: len(ws.sent) == 1)

        assert ws.sent[0]["method"] == "subscribe"
        rest_client.jwt.assert_not_awaited()
