"""
Duplex Channel

One persistent WebSocket connection to the RPC node, shared by every
socket request and subscription.

Lifecycle:
    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTING -> DISCONNECTED
    CONNECTED -> DISCONNECTED when the remote side closes

connect() and disconnect() are single-flight: concurrent callers join the
operation already in progress instead of starting another one.

Inbound frames are decoded once, then offered to pending waits (by
predicate), to the subscription registry (by notification method and
subscription id), and finally to "message" listeners.
"""

import asyncio
import inspect
import itertools
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set

import websockets
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .errors import (
    AckTimeoutError,
    ConnectError,
    ConnectionClosedError,
    NotConnectedError,
    RpcError,
    SubscriptionError,
    UnknownSubscriptionError,
)
from .metrics import ChannelMetrics
from .types import ChannelState, PendingRequest, Subscription

EVENTS = ('open', 'connect', 'message', 'close', 'disconnect', 'error')

DEFAULT_HEADERS = {
    'accept-language': 'en-US,en;q=0.9',
    'cache-control': 'no-cache',
    'pragma': 'no-cache',
}


class DuplexChannel:
    """
    WebSocket channel with request/reply correlation and subscriptions.

    Usage:
        channel = DuplexChannel("wss://solana-rpc.publicnode.com")
        await channel.connect()

        slot = await channel.request("getSlot")
        sub_id = await channel.subscribe("slotSubscribe", [], on_slot)
        await channel.unsubscribe(sub_id)

        await channel.disconnect()
    """

    def __init__(
        self,
        url: str,
        keepalive_interval: float = 15.0,
        ack_timeout: float = 60.0,
        headers: Optional[Dict[str, str]] = None,
        connector: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize channel.

        Args:
            url: WebSocket endpoint
            keepalive_interval: Seconds between send_keepalive() calls
            ack_timeout: Default deadline for wait_for_message()
            headers: Extra handshake headers
            connector: Replacement for websockets.connect (tests)
        """
        self._url = url
        self._keepalive_interval = keepalive_interval
        self._ack_timeout = ack_timeout
        self._headers = dict(DEFAULT_HEADERS if headers is None else headers)
        self._connector = connector or websockets.connect
        self._logger = logging.getLogger("DuplexChannel")

        # Connection state
        self._ws = None
        self._state = ChannelState.DISCONNECTED
        self._connecting: Optional[asyncio.Future] = None
        self._disconnecting: Optional[asyncio.Future] = None

        # Tasks
        self._readers: Dict[Any, asyncio.Task] = {}
        self._keepalive_task: Optional[asyncio.Task] = None
        self._callback_tasks: Set[asyncio.Future] = set()

        # Registries
        self._listeners: Dict[str, List[Callable]] = {event: [] for event in EVENTS}
        self._pending: Dict[int, PendingRequest] = {}
        self._subscriptions: Dict[Any, Subscription] = {}

        # Message ids: strictly increasing per channel
        self._ids = itertools.count(1)

        self.metrics = ChannelMetrics()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    @property
    def url(self) -> Optional[str]:
        return self._url if self._ws is not None else None

    @property
    def ready_state(self) -> State:
        """Readiness of the underlying socket (CLOSED when there is none)."""
        return self._ws.state if self._ws is not None else State.CLOSED

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pending_callbacks(self) -> int:
        """Async listener callbacks still running."""
        return len(self._callback_tasks)

    @property
    def subscriptions(self) -> Dict[Any, Subscription]:
        return dict(self._subscriptions)

    def next_id(self) -> int:
        return next(self._ids)

    # =========================================================================
    # Listeners
    # =========================================================================

    def on(self, event: str, callback: Callable) -> None:
        """Register a listener for open, message, close, error (or connect/disconnect)."""
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Callable) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def _emit(self, event: str, *args) -> None:
        # Copy so listeners may detach themselves while being called
        for callback in list(self._listeners[event]):
            self._invoke(callback, *args)

    def _invoke(self, callback: Callable, *args) -> None:
        try:
            result = callback(*args)
        except Exception as e:
            self.metrics.listener_errors += 1
            self._logger.warning(f"Listener {getattr(callback, '__name__', callback)} raised: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Future) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.metrics.listener_errors += 1
            self._logger.warning(f"Async listener raised: {error}")

    # =========================================================================
    # Connect / Disconnect
    # =========================================================================

    async def connect(self) -> None:
        """Open the socket; joins an in-flight connect if there is one."""
        if self._connecting is None:
            self._connecting = asyncio.ensure_future(self._connect())
        await asyncio.shield(self._connecting)

    async def disconnect(self, reason: Optional[BaseException] = None) -> None:
        """
        Close the socket; joins an in-flight disconnect if there is one.

        With a reason, the socket is closed and the reason is raised back
        to the caller.
        """
        if self._disconnecting is None or self._disconnecting.done():
            self._disconnecting = asyncio.ensure_future(self._disconnect(reason))
        await asyncio.shield(self._disconnecting)

    async def _connect(self) -> None:
        teardown = self._disconnecting
        try:
            if teardown is not None and not teardown.done():
                await asyncio.shield(teardown)
            elif self._state is ChannelState.CONNECTED:
                await self.disconnect()
        except Exception as e:
            self._logger.debug(f"Teardown before reconnect raised: {e}")

        self._state = ChannelState.CONNECTING

        try:
            try:
                ws = await self._connector(
                    self._url,
                    additional_headers=self._headers,
                    max_size=None,
                )
            except Exception as e:
                self._state = ChannelState.DISCONNECTED
                raise ConnectError(f"Failed to connect to {self._url}: {e}") from e

            if ws.state is not State.OPEN:
                self._state = ChannelState.DISCONNECTED
                raise ConnectError(f"Socket closed before becoming ready: {self._url}")
        finally:
            self._connecting = None

        self._ws = ws
        self._state = ChannelState.CONNECTED
        self.metrics.connects += 1
        self.metrics.is_connected = True
        self.metrics.connected_at = time.time()

        self._readers[ws] = asyncio.ensure_future(self._read_loop(ws))
        self._keepalive_task = asyncio.ensure_future(self._keepalive_loop())

        self._logger.info(f"Connected to {self._url}")
        self._emit('open')
        self._emit('connect')

    async def _disconnect(self, reason: Optional[BaseException]) -> None:
        if self._state is ChannelState.CONNECTING and self._connecting is not None:
            try:
                await asyncio.shield(self._connecting)
            except Exception as e:
                self._logger.debug(f"Pending connect failed during disconnect: {e}")

        ws = self._ws
        if self._state is ChannelState.CONNECTED:
            self._state = ChannelState.DISCONNECTING

        try:
            if reason is not None:
                raise reason

            if ws is not None:
                await self._close_socket(ws)
        except Exception as e:
            if ws is not None:
                try:
                    await ws.close()
                except Exception as close_error:
                    self._logger.debug(f"Close after failure raised: {close_error}")
            await self._stop_reader(ws)
            self._handle_close(ws)
            self._logger.warning(f"Disconnected from {self._url} with error: {e}")
            raise
        finally:
            self._state = ChannelState.DISCONNECTED

        self._logger.info(f"Disconnected from {self._url}")

    async def _close_socket(self, ws) -> None:
        """Graceful close, whatever the socket's readiness."""
        state = ws.state

        if state in (State.CONNECTING, State.OPEN):
            await ws.close()
        elif state is State.CLOSING:
            await ws.wait_closed()

        await self._stop_reader(ws)
        self._handle_close(ws)

    async def _stop_reader(self, ws) -> None:
        """Cancel the reader bound to ws (not whichever socket is current)."""
        task = self._readers.pop(ws, None)
        if task is None or task.done() or task is asyncio.current_task():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _handle_close(self, ws) -> None:
        """Teardown shared by local and remote close. Runs once per socket."""
        if ws is None or self._ws is not ws:
            return

        self._ws = None
        self._clear_keepalive()

        if self._state is ChannelState.CONNECTED:
            self._state = ChannelState.DISCONNECTED

        self.metrics.disconnects += 1
        self.metrics.is_connected = False

        for pending in list(self._pending.values()):
            pending.reject(ConnectionClosedError("Connection destroyed"))
        self._subscriptions.clear()

        self._emit('close')
        self._emit('disconnect')

    # =========================================================================
    # Inbound
    # =========================================================================

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosed as e:
            self._logger.info(f"Connection closed by remote: {e}")
        except Exception as e:
            self._logger.error(f"Reader failed: {e}")
            self._emit('error', e)
        finally:
            self._readers.pop(ws, None)
            self._handle_close(ws)

    def _handle_message(self, raw: Any) -> None:
        self.metrics.messages_received += 1
        self.metrics.last_message_time = time.time()

        try:
            data = json.loads(raw)
        except ValueError as e:
            self.metrics.parse_errors += 1
            self._logger.warning(f"Invalid JSON: {str(raw)[:100]}")
            self._emit('error', e)
            return

        for pending in list(self._pending.values()):
            try:
                matched = pending.predicate(data)
            except Exception as e:
                pending.reject(e)
                continue
            if matched:
                pending.resolve(data)

        self._dispatch_notification(data)
        self._emit('message', data)

    def _dispatch_notification(self, data: Any) -> None:
        if not isinstance(data, dict) or 'method' not in data:
            return

        params = data.get('params')
        if not isinstance(params, dict):
            return

        subscription = self._subscriptions.get(params.get('subscription'))
        if subscription is None or not subscription.matches(data):
            return

        subscription.notifications += 1
        self.metrics.notifications_delivered += 1
        self._invoke(subscription.callback, params.get('result'))

    # =========================================================================
    # Outbound
    # =========================================================================

    async def send(self, data: Any) -> None:
        """Deliver a raw frame. Raises NotConnectedError unless the socket is open."""
        ws = self._ws
        if self._state is not ChannelState.CONNECTED or ws is None or ws.state is not State.OPEN:
            raise NotConnectedError("Socket is not connected")

        await ws.send(data)
        self.metrics.messages_sent += 1

    async def send_json(self, data: Any) -> None:
        await self.send(json.dumps(data))

    # =========================================================================
    # Waiting for replies
    # =========================================================================

    def expect(
        self,
        predicate: Callable[[Any], bool],
        timeout: Optional[float] = None,
        request_id: Optional[int] = None,
    ) -> PendingRequest:
        """
        Register a wait without suspending.

        Register before sending so a fast reply cannot slip past.
        """
        if self._state is not ChannelState.CONNECTED:
            raise NotConnectedError("Socket is not connected")

        pending = PendingRequest(
            id=request_id if request_id is not None else self.next_id(),
            predicate=predicate,
            future=asyncio.get_running_loop().create_future(),
            timeout=self._ack_timeout if timeout is None else timeout,
        )
        self._pending[pending.id] = pending
        return pending

    async def wait(self, pending: PendingRequest) -> Any:
        """Await a registered wait; always deregisters it."""
        try:
            return await asyncio.wait_for(pending.future, pending.timeout)
        except asyncio.TimeoutError as e:
            self.metrics.ack_timeouts += 1
            raise AckTimeoutError(f"ACK timed out after {pending.timeout}s") from e
        finally:
            self._pending.pop(pending.id, None)

    async def wait_for_message(
        self,
        predicate: Callable[[Any], bool],
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Resolve with the first inbound message satisfying predicate.

        Raises:
            AckTimeoutError: nothing matched before the deadline
            ConnectionClosedError: the channel closed first
        """
        return await self.wait(self.expect(predicate, timeout))

    async def request(
        self,
        method: str,
        params: Optional[list] = None,
        wait: bool = True,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        JSON-RPC call over the socket.

        Returns the result, or the message id when wait is False.
        """
        request_id = self.next_id()
        envelope = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params if params is not None else [],
        }

        if not wait:
            await self.send_json(envelope)
            return request_id

        pending = self.expect(
            lambda msg: isinstance(msg, dict) and msg.get('id') == request_id,
            timeout,
            request_id=request_id,
        )
        try:
            await self.send_json(envelope)
            reply = await self.wait(pending)
        finally:
            self._pending.pop(pending.id, None)

        if reply.get('error'):
            raise RpcError.from_payload(reply['error'])
        return reply.get('result')

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(
        self,
        method: str,
        params: Optional[list],
        callback: Callable[[Any], Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """Send `<name>Subscribe` and route `<name>Notification` to callback."""
        subscription_id = await self.request(method, params, timeout=timeout)

        if subscription_id is None or isinstance(subscription_id, bool):
            raise SubscriptionError(f"{method} returned no subscription id")

        if subscription_id in self._subscriptions:
            self._logger.warning(f"Replacing callback for subscription {subscription_id}")

        self._subscriptions[subscription_id] = Subscription.for_method(subscription_id, method, callback)
        self._logger.debug(f"{method} -> subscription {subscription_id}")
        return subscription_id

    async def unsubscribe(self, subscription_id: Any, timeout: Optional[float] = None) -> Any:
        """Drop the callback, then send the matching `<name>Unsubscribe`."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            raise UnknownSubscriptionError(subscription_id)

        return await self.request(subscription.unsubscribe_method, [subscription_id], timeout=timeout)

    # =========================================================================
    # Keepalive
    # =========================================================================

    async def send_keepalive(self) -> None:
        """Periodic keepalive payload. No-op by default; override to send one."""
        return None

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self._keepalive_interval)
            try:
                await self.send_keepalive()
            except Exception as e:
                self._logger.debug(f"Keepalive failed: {e}")
            self.metrics.keepalives += 1
            self._logger.debug(f"Keepalive tick {self.metrics.keepalives}")

    def _clear_keepalive(self) -> None:
        task = self._keepalive_task
        self._keepalive_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
