"""
Paradex WebSocket Manager

One physical WebSocket connection multiplexes any number of logical
subscriptions. A single background task owns the socket and all subscription
state; callers only submit commands (subscribe / unsubscribe / stop) through
a queue, from any task or thread.

Behaviour:
    - Fan-out: subscribers to the same wire channel share one server
      subscription. Only the first subscriber triggers a subscribe request and
      only the last one to leave triggers an unsubscribe request.
    - Confirmation: when the server acknowledges a channel, every subscriber
      receives Connected once. A subscriber joining a confirmed channel gets
      Connected immediately.
    - Reconnect: when the socket drops, every subscriber receives Disconnected,
      the manager reconnects with a fixed delay, re-authenticates private
      sessions and re-sends one subscribe request per wire channel.
    - Heartbeat: a ping is sent every heartbeat interval; after
      max_missed_pongs ticks without a pong the socket is closed and the
      reconnect procedure runs.

Usage:
    async with WebsocketManager(Environment.TESTNET) as manager:
        identifier = await manager.subscribe(BboChannel("BTC-USD-PERP"), print)
        ...
        await manager.unsubscribe(identifier)
"""

import asyncio
import json
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Union

import aiohttp

from core.config import settings
from core.errors import ParadexError, WebSocketSendError
from core.logging import get_logger, log_websocket_event
from exchanges.paradex.subscriptions import ChannelEvent, SubscriptionSpec, typed_callback
from exchanges.paradex.urls import Environment
from exchanges.paradex.ws_types import (
    Channel,
    Connected,
    Disconnected,
    Identifier,
    Message,
    Unsubscribed,
    auth_request,
    channel_request,
)


Callback = Callable[[Message], None]


# ============================================
# Commands and Subscription State
# ============================================

@dataclass
class _Subscribe:
    channel: Channel
    callback: Callback
    identifier: Identifier


@dataclass
class _Unsubscribe:
    identifier: Identifier


@dataclass
class _Stop:
    pass


@dataclass
class _Subscriber:
    channel: Channel
    identifier: Identifier
    callback: Callback


@dataclass
class _ChannelState:
    connected: bool = False
    subscribers: List[_Subscriber] = field(default_factory=list)


class WebsocketManager:
    """
    Multiplexed, self-healing Paradex WebSocket session.

    Attributes:
        url: WebSocket URL
        rest_client: REST client used to fetch bearer tokens for private channels
        heartbeat_interval: Seconds between pings
        max_missed_pongs: Heartbeat ticks without pong before reconnecting
        reconnect_delay: Fixed delay between connection attempts

    Example:
        >>> manager = WebsocketManager(Environment.PRODUCTION, rest_client=client)
        >>> await manager.start()
        >>> identifier = await manager.subscribe(OrdersChannel(), on_message)
        >>> await manager.stop()
        >>> await manager.wait_closed()

    Notes:
        - Callbacks run on the manager's event loop and must not block
        - A callback raising an exception is logged and does not affect others
        - Identifiers start at 1; request id 0 is reserved for auth
    """

    def __init__(
        self,
        url: Union[Environment, str, None] = None,
        rest_client=None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat_interval: Optional[float] = None,
        max_missed_pongs: Optional[int] = None,
        reconnect_delay: Optional[float] = None
    ):
        if url is None:
            url = settings.environment_url
        self.url = url.websocket if isinstance(url, Environment) else url
        self.rest_client = rest_client

        self.session = session
        self._owns_session = session is None

        self.heartbeat_interval = (
            heartbeat_interval if heartbeat_interval is not None else settings.ws_heartbeat_interval
        )
        self.max_missed_pongs = (
            max_missed_pongs if max_missed_pongs is not None else settings.ws_max_missed_pongs
        )
        self.reconnect_delay = (
            reconnect_delay if reconnect_delay is not None else settings.ws_reconnect_delay
        )

        self.logger = get_logger(__name__)

        # Shared with submitting threads
        self._id_lock = threading.Lock()
        self._next_id = 1
        self._closed = False

        # Owned by the read loop task
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._commands: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._ws = None
        self._missed_pongs = 0
        self._subscriptions_by_id: Dict[Identifier, str] = {}
        self._subscriptions_by_channel: Dict[str, _ChannelState] = {}
        self._pending_unsubscribes: Set[int] = set()

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        """
        Spawn the read loop task. The connection itself is opened by the task.

        Raises:
            RuntimeError: If the manager was already started
        """
        if self._task is not None:
            raise RuntimeError("WebsocketManager already started")

        self._loop = asyncio.get_running_loop()
        self._commands = asyncio.Queue()
        if self.session is None:
            self.session = aiohttp.ClientSession()
        self._task = asyncio.ensure_future(self._run())
        self.logger.debug(f"WebsocketManager started for {self.url}")

    async def stop(self) -> None:
        """
        Ask the read loop to exit after its current iteration.

        Raises:
            WebSocketSendError: If the manager is already stopped
        """
        self._submit(_Stop(), closing=True)

    async def wait_closed(self) -> None:
        """Wait for the read loop task to finish"""
        if self._task is not None:
            await self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.is_running and not self._closed:
            await self.stop()
        await self.wait_closed()

    # ============================================
    # Public API
    # ============================================

    async def subscribe(self, channel: Channel, callback: Callback) -> Identifier:
        """
        Register a callback for a channel.

        Returns immediately with the subscription's identifier; confirmation
        arrives later as a Connected message.

        Raises:
            WebSocketSendError: If the manager is not running
        """
        identifier = self._new_identifier()
        self._submit(_Subscribe(channel, callback, identifier))
        return identifier

    async def subscribe_typed(
        self,
        spec: SubscriptionSpec,
        callback: Callable[[ChannelEvent], None]
    ) -> Identifier:
        """
        Subscribe with a typed descriptor.

        The callback receives control events as-is and payloads wrapped in
        Data(payload); messages not belonging to the descriptor are dropped.
        """
        return await self.subscribe(spec.to_channel(), typed_callback(spec, callback))

    async def unsubscribe(self, identifier: Identifier) -> None:
        """
        Remove a subscription. Its callback receives Unsubscribed.

        Raises:
            WebSocketSendError: If the manager is not running
        """
        self._submit(_Unsubscribe(identifier))

    # ============================================
    # Command Submission
    # ============================================

    def _new_identifier(self) -> Identifier:
        with self._id_lock:
            identifier = Identifier(self._next_id)
            self._next_id += 1
        return identifier

    def _submit(self, command, closing: bool = False) -> None:
        with self._id_lock:
            if self._closed or self._task is None or self._task.done():
                raise WebSocketSendError(f"WebsocketManager is not running, cannot send {command!r}")
            if closing:
                self._closed = True

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is self._loop:
            self._commands.put_nowait(command)
            return

        try:
            self._loop.call_soon_threadsafe(self._commands.put_nowait, command)
        except RuntimeError as e:
            raise WebSocketSendError(str(e)) from e

    # ============================================
    # Read Loop
    # ============================================

    async def _run(self) -> None:
        receive_task: Optional[asyncio.Future] = None
        command_task: Optional[asyncio.Future] = None
        heartbeat_task: Optional[asyncio.Future] = None

        try:
            self._ws = await self._connect_with_retry()

            while self._ws is not None:
                # Re-arm whichever waiters fired last round
                if receive_task is None:
                    receive_task = asyncio.ensure_future(self._ws.receive())
                if command_task is None:
                    command_task = asyncio.ensure_future(self._commands.get())
                if heartbeat_task is None:
                    heartbeat_task = asyncio.ensure_future(asyncio.sleep(self.heartbeat_interval))

                done, _ = await asyncio.wait(
                    {receive_task, command_task, heartbeat_task},
                    return_when=asyncio.FIRST_COMPLETED
                )

                reconnect = False

                # Priority: socket, then commands, then heartbeat
                if receive_task in done:
                    reconnect = await self._handle_receive(receive_task)
                    receive_task = None

                if command_task in done:
                    command = command_task.result()
                    command_task = None
                    if isinstance(command, _Stop):
                        self.logger.warning("Received websocket stop request. Stopping websocket read task")
                        break
                    await self._handle_command(command)

                # A reconnect already pending makes this tick moot
                if heartbeat_task in done:
                    heartbeat_task = None
                    if not reconnect:
                        reconnect = await self._heartbeat_tick()

                # Drop the dead socket's waiters; commands keep queueing
                if reconnect:
                    for task in (receive_task, heartbeat_task):
                        if task is not None:
                            task.cancel()
                    await asyncio.gather(
                        *[t for t in (receive_task, heartbeat_task) if t is not None],
                        return_exceptions=True
                    )
                    receive_task = None
                    heartbeat_task = None
                    await self._reconnect()

        except Exception:
            self.logger.exception("Websocket read loop failed")
            raise

        finally:
            pending = [t for t in (receive_task, command_task, heartbeat_task) if t is not None]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            await self._close_socket()
            if self._owns_session and self.session is not None:
                await self.session.close()
            with self._id_lock:
                self._closed = True
            self.logger.info("Exiting websocket read loop")

    async def _handle_receive(self, receive_task: asyncio.Future) -> bool:
        """Process one frame. Returns True when the connection must be re-established."""
        try:
            msg = receive_task.result()
        except Exception as e:
            self.logger.warning(f"Error in received message {e!r}")
            return True

        if msg.type == aiohttp.WSMsgType.TEXT:
            self.logger.debug(f"Received websocket message {msg.data}")
            self._handle_text(msg.data)
            return False

        if msg.type == aiohttp.WSMsgType.PONG:
            self._missed_pongs = 0
            return False

        if msg.type == aiohttp.WSMsgType.PING:
            try:
                await self._ws.pong(msg.data)
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                self.logger.warning(f"Error answering ping {e!r}")
                return True
            return False

        if msg.type in (
            aiohttp.WSMsgType.CLOSE,
            aiohttp.WSMsgType.CLOSING,
            aiohttp.WSMsgType.CLOSED,
            aiohttp.WSMsgType.ERROR,
        ):
            return True

        self.logger.warning(f"Unexpected websocket message {msg.type}")
        return False

    # ============================================
    # Frame Dispatch
    # ============================================

    def _handle_text(self, text: str) -> None:
        try:
            frame = json.loads(text)
        except ValueError:
            self.logger.warning(f"Could not parse message {text!r}")
            return

        if not isinstance(frame, dict):
            self.logger.warning(f"Could not parse message {text!r}")
            return

        params = frame.get("params")
        if "method" in frame and isinstance(params, dict):
            self._handle_notification(params)
        elif "id" in frame and ("result" in frame or "error" in frame):
            self._handle_response(frame, text)
        else:
            self.logger.warning(f"Could not parse message {text!r}")

    def _handle_notification(self, params: dict) -> None:
        channel_name = params.get("channel")
        if not isinstance(channel_name, str):
            self.logger.warning(f"Notification without channel {params!r}")
            return

        state = self._subscriptions_by_channel.get(channel_name)
        if state is None:
            self.logger.debug(f"Notification for untracked channel {channel_name}")
            return

        message = state.subscribers[0].channel.to_message(params)
        for subscriber in list(state.subscribers):
            self._deliver(subscriber.callback, message)

    def _handle_response(self, frame: dict, text: str) -> None:
        if "error" in frame:
            self.logger.warning(f"Received error response {frame['error']!r} message {text!r}")
            return

        request_id = frame.get("id")
        if request_id in self._pending_unsubscribes:
            self._pending_unsubscribes.discard(request_id)
            return

        result = frame.get("result")
        channel_name = result.get("channel") if isinstance(result, dict) else None
        if not isinstance(channel_name, str):
            self.logger.debug(f"Response without channel {text!r}")
            return

        state = self._subscriptions_by_channel.get(channel_name)
        if state is None or state.connected:
            return

        state.connected = True
        log_websocket_event("subscribed", channel_name)
        for subscriber in list(state.subscribers):
            self._deliver(subscriber.callback, Connected())

    def _deliver(self, callback: Callback, message: Message) -> None:
        try:
            callback(message)
        except Exception:
            self.logger.exception(f"Subscriber callback raised while handling {type(message).__name__}")

    # ============================================
    # Commands
    # ============================================

    async def _handle_command(self, command) -> None:
        if isinstance(command, _Subscribe):
            await self._handle_subscribe(command)
        elif isinstance(command, _Unsubscribe):
            await self._handle_unsubscribe(command.identifier)

    async def _handle_subscribe(self, command: _Subscribe) -> None:
        channel_name = command.channel.channel_name()
        self._subscriptions_by_id[command.identifier] = channel_name
        subscriber = _Subscriber(command.channel, command.identifier, command.callback)

        state = self._subscriptions_by_channel.get(channel_name)
        if state is not None:
            if state.connected:
                self._deliver(command.callback, Connected())
            state.subscribers.append(subscriber)
            return

        self._subscriptions_by_channel[channel_name] = _ChannelState(False, [subscriber])
        self.logger.info(f"Subscribing to {channel_name}")
        await self._send(channel_request("subscribe", channel_name, command.identifier))

    async def _handle_unsubscribe(self, identifier: Identifier) -> None:
        channel_name = self._subscriptions_by_id.pop(identifier, None)
        if channel_name is None:
            self.logger.warning(
                f"Received unsubscribe request for {identifier} but could not locate subscription"
            )
            return

        state = self._subscriptions_by_channel.get(channel_name)
        if state is None:
            self.logger.warning(f"Could not find subscription to remove {identifier}")
            return

        index = next(
            (i for i, sub in enumerate(state.subscribers) if sub.identifier == identifier),
            None
        )
        if index is None:
            self.logger.warning(f"Could not find {identifier} in subscriptions for {channel_name}")
            return

        subscriber = state.subscribers.pop(index)
        if not state.subscribers:
            del self._subscriptions_by_channel[channel_name]
            self._pending_unsubscribes.add(identifier.value)
            self.logger.info(f"Unsubscribing from {channel_name}")
            await self._send(channel_request("unsubscribe", channel_name, identifier))

        self._deliver(subscriber.callback, Unsubscribed())

    # ============================================
    # Connection Management
    # ============================================

    async def _open_connection(self):
        ws = await self.session.ws_connect(self.url, autoping=False)

        if self.rest_client is not None and self.rest_client.is_private:
            try:
                token = await self.rest_client.jwt()
            except ParadexError as e:
                self.logger.error(f"Could not retrieve jwt auth token {e}")
            else:
                try:
                    await ws.send_str(auth_request(token))
                except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                    self.logger.error(f"Error sending auth request {e!r}")

        return ws

    async def _connect_with_retry(self):
        """Connect until it succeeds; returns None if the manager is stopped meanwhile."""
        while not self._closed:
            try:
                ws = await self._open_connection()
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                self.logger.warning(f"Error connecting to websocket {e!r}")
                await asyncio.sleep(self.reconnect_delay)
                continue

            self._missed_pongs = 0
            log_websocket_event("connected", details=self.url)
            return ws
        return None

    async def _reconnect(self) -> None:
        # Step 1: close the old socket
        log_websocket_event("disconnected", details=self.url)
        await self._close_socket()

        # Step 2: every subscriber learns the channel is down
        for state in self._subscriptions_by_channel.values():
            state.connected = False
            for subscriber in list(state.subscribers):
                self._deliver(subscriber.callback, Disconnected())

        # Step 3: acks for the old socket will never arrive
        self._pending_unsubscribes.clear()

        # Step 4: reconnect (auth frame goes out before any resubscribe)
        self._ws = await self._connect_with_retry()
        if self._ws is None:
            return

        # Step 5: one subscribe per live channel, reusing its identifier
        for channel_name, state in list(self._subscriptions_by_channel.items()):
            await self._send(channel_request("subscribe", channel_name, state.subscribers[0].identifier))

    async def _heartbeat_tick(self) -> bool:
        """Returns True when the connection must be re-established."""
        self._missed_pongs += 1
        if self._missed_pongs >= self.max_missed_pongs:
            self.logger.warning(
                f"No pong received for {self._missed_pongs} heartbeats, closing connection"
            )
            return True

        try:
            await self._ws.ping()
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            self.logger.warning(f"Error sending ping {e!r}")
            return True
        return False

    async def _send(self, frame: str) -> None:
        if self._ws is None or self._ws.closed:
            self.logger.error(f"Cannot send {frame}: websocket is not connected")
            return
        try:
            await self._ws.send_str(frame)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            self.logger.error(f"Error sending request {frame} error {e!r}")

    async def _close_socket(self) -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        if not ws.closed:
            try:
                await ws.close()
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
                self.logger.debug(f"Error closing websocket {e!r}")
