"""
EventSub WebSocket transport.

SessionManager owns one logical EventSub session. A single task reads the
socket, tracks the keepalive deadline and follows the server's reconnect
instructions; resolved events are handed to the consumer through a bounded
queue so a slow consumer pauses reading instead of growing memory.

Reconnects requested by Twitch (session_reconnect) open the new connection
while the old one is still being read. Once the new one has been welcomed,
the old connection is drained and closed. Subscriptions survive that hand-over.
Dead connections (missed keepalive, closed socket, malformed frame) are
replaced by redialing the default endpoint, which starts a new session
without subscriptions.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .envelope import Frame, MessageType, Notification, ParserConfig, parse_frame
from .errors import (
    EnvelopeError,
    PayloadSchemaError,
    ProtocolError,
    SessionClosedError,
    TwitchConnectionError,
)
from .events import Delivery, RecoverableError, resolve
from .registry import DEFAULT_REGISTRY, Registry

logger = logging.getLogger(__name__)

DEFAULT_URL = "wss://eventsub.wss.twitch.tv/ws"
DEFAULT_KEEPALIVE_TIMEOUT = 10

Connector = Callable[[str], Awaitable[Any]]

_END = object()


class SessionStatus(str, Enum):
    CONNECTING = "connecting"
    WELCOMED = "welcomed"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


@dataclass
class Session:
    """
    Identity of the current WebSocket session.

    Attributes:
        id: Session id to use as the transport of new subscriptions
        keepalive_timeout: Seconds the server may stay silent
        status: Current state of the session
        reconnect_url: URL given by the last session_reconnect frame
        last_message_at: Monotonic time of the last frame received
        connected_at: Server-side connection time
    """
    id: str
    keepalive_timeout: float
    status: SessionStatus
    reconnect_url: Optional[str] = None
    last_message_at: float = 0.0
    connected_at: Optional[str] = None


class SessionManager:
    """
    Manages an EventSub WebSocket session and delivers its events.

    Usage:
        manager = SessionManager()
        manager.add_callback("welcome", subscribe_all)
        manager.start()
        async for delivery in manager.events():
            ...
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        registry: Registry = DEFAULT_REGISTRY,
        config: Optional[ParserConfig] = None,
        connect: Optional[Connector] = None,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        keepalive_grace: float = 5.0,
        welcome_timeout: float = 10.0,
        drain_timeout: float = 1.0,
        queue_size: int = 100,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.url = url
        self.registry = registry
        self.config = config or ParserConfig()
        self._connect = connect or websockets.connect
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.keepalive_grace = keepalive_grace
        self.welcome_timeout = welcome_timeout
        self.drain_timeout = drain_timeout
        self._sleep = sleep

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._callbacks: Dict[str, List[Callable]] = {}
        self._ws: Any = None
        self._task: Optional[asyncio.Task] = None
        self._status = SessionStatus.CONNECTING
        self._closing = False
        self._finished = False
        self._failure: Optional[SessionClosedError] = None
        self._deadline = 0.0

        self.session: Optional[Session] = None
        self.reconnect_count = 0
        self.keepalive_misses = 0

    # Public interface

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def session_id(self) -> Optional[str]:
        return self.session.id if self.session else None

    def add_callback(self, name: str, callback: Callable) -> None:
        """
        Register a callback.

        Args:
            name: "welcome" (called with the Session and whether subscriptions
                carried over from the previous session) or "status" (called
                with every new SessionStatus)
            callback: Plain function or coroutine function
        """
        if name not in ("welcome", "status"):
            raise ValueError(f"Unknown callback name: {name}")
        self._callbacks.setdefault(name, []).append(callback)
        logger.debug(f"Added callback for: {name}")

    def start(self) -> asyncio.Task:
        """Run the session in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self.run())
            # failures are reported through events()
            self._task.add_done_callback(lambda t: t.cancelled() or t.exception())
        return self._task

    async def run(self) -> None:
        """
        Connect and serve the session until close() or a terminal failure.

        Raises:
            SessionClosedError: If the retry budget is exhausted
        """
        self._task = asyncio.current_task()
        try:
            await self._run()
        except SessionClosedError as e:
            logger.error(f"EventSub session closed: {e}")
            self._failure = e
            raise
        finally:
            await self._shutdown()

    async def close(self) -> None:
        """Stop the session from any state and release the connection."""
        self._closing = True
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        else:
            await self._shutdown()

    async def events(self) -> AsyncIterator[Delivery]:
        """
        Iterate over deliveries in the order they were received.

        Ends when the session is closed; raises SessionClosedError if it
        ended because of a terminal failure.
        """
        while True:
            if self._finished and self._queue.empty():
                break
            item = await self._queue.get()
            if item is _END:
                break
            yield item
        if self._failure is not None:
            raise self._failure

    async def __aenter__(self) -> "SessionManager":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # Session loop

    async def _run(self) -> None:
        self._set_status(SessionStatus.CONNECTING)
        ws, session = await self._establish(self.url)
        await self._activate(ws, session, reconnected=False)

        while not self._closing:
            await self._serve()
            if self._closing:
                break

            # dead connection, redial the default endpoint
            self._set_status(SessionStatus.RECONNECTING)
            self.reconnect_count += 1
            await self._close_ws(self._ws)
            self._ws = None
            ws, session = await self._establish(self.url)
            await self._activate(ws, session, reconnected=False)

    async def _serve(self) -> None:
        """Read the current connection until it has to be replaced by redialing."""
        recv_task: Optional[asyncio.Future] = None
        handover: Optional[asyncio.Future] = None
        incoming: Any = None
        old_ws = self._ws

        try:
            while True:
                waiters = set()
                if old_ws is not None:
                    if recv_task is None:
                        recv_task = asyncio.ensure_future(old_ws.recv())
                    waiters.add(recv_task)
                if handover is not None:
                    waiters.add(handover)

                timeout = None
                if handover is None:
                    timeout = max(self._deadline - time.monotonic(), 0.0)

                done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

                if not done:
                    self.keepalive_misses += 1
                    logger.warning(
                        f"No message within {self._keepalive_window():.1f}s on session {self.session_id}"
                    )
                    return

                if recv_task is not None and recv_task in done:
                    task, recv_task = recv_task, None
                    try:
                        raw = task.result()
                    except (ConnectionClosed, WebSocketException, OSError) as e:
                        logger.info(f"WebSocket connection closed: {e}")
                        if handover is None:
                            return
                        # keep waiting for the replacement connection
                        old_ws = None
                        continue

                    reconnect_url = await self._receive(raw, old_ws)
                    if reconnect_url is _END:
                        if handover is None:
                            return
                        old_ws = None
                        continue
                    if reconnect_url and handover is None:
                        self._set_status(SessionStatus.RECONNECTING)
                        self.reconnect_count += 1
                        handover = asyncio.ensure_future(self._establish(reconnect_url, handover=True))

                if handover is not None and handover in done:
                    ws, session = handover.result()
                    handover = None
                    incoming = ws
                    if old_ws is not None:
                        task, recv_task = recv_task, None
                        await self._drain(old_ws, task)
                        await self._close_ws(old_ws)
                    await self._activate(ws, session, reconnected=True)
                    incoming = None
                    old_ws = ws
        finally:
            if recv_task is not None and not recv_task.done():
                recv_task.cancel()
            if handover is not None:
                if not handover.done():
                    handover.cancel()
                    await asyncio.gather(handover, return_exceptions=True)
                elif not handover.cancelled() and handover.exception() is None:
                    incoming = handover.result()[0]
            # welcomed but never activated
            await self._close_ws(incoming)

    async def _receive(self, raw: Any, ws: Any) -> Any:
        """
        Handle one frame from a connection that has been welcomed.

        Returns the reconnect URL of a session_reconnect frame, _END if the
        connection broke the protocol or has to be replaced by a new session,
        otherwise None.
        """
        if ws is self._ws:
            self._touch()

        try:
            frame = parse_frame(raw, self.config)
        except EnvelopeError as e:
            logger.error(f"Malformed frame on session {self.session_id}: {e}")
            return _END

        message_type = frame.message_type
        logger.debug(f"Received message type: {message_type.value}")

        if message_type is MessageType.SESSION_KEEPALIVE:
            return None

        if message_type is MessageType.NOTIFICATION:
            await self._deliver(self._resolve(frame))
            return None

        if message_type is MessageType.REVOCATION:
            revocation = frame.envelope
            logger.warning(
                f"Subscription {revocation.subscription_id} ({revocation.event_type}) revoked: {revocation.reason}"
            )
            await self._deliver(revocation)
            return None

        if message_type is MessageType.SESSION_RECONNECT:
            reconnect_url = frame.session.reconnect_url
            if not reconnect_url:
                # no session to carry over, start a new one
                logger.warning("Reconnect message without a URL, starting a new session")
                return _END
            if self.session is not None:
                self.session.reconnect_url = reconnect_url
            logger.info(f"Received reconnect message. New URL: {reconnect_url}")
            return reconnect_url

        logger.warning(f"Unexpected {message_type.value} on an active session, ignoring")
        return None

    def _resolve(self, frame: Frame) -> Delivery:
        notification: Notification = frame.envelope
        try:
            return resolve(notification, self.registry, self.config)
        except PayloadSchemaError as e:
            logger.error(f"Schema error in message {frame.metadata.message_id}: {e}")
            return RecoverableError(message_id=frame.metadata.message_id, error=e)

    async def _deliver(self, delivery: Delivery) -> None:
        # blocks while the consumer is behind
        await self._queue.put(delivery)

    async def _drain(self, ws: Any, recv_task: Optional[asyncio.Future]) -> None:
        """
        Deliver what the old connection still holds before it is closed.

        Reads until the server closes it or it stays silent for
        `drain_timeout` seconds.
        """
        drained = 0
        while True:
            if recv_task is None:
                recv_task = asyncio.ensure_future(ws.recv())
            try:
                raw = await asyncio.wait_for(recv_task, self.drain_timeout)
            except (asyncio.TimeoutError, ConnectionClosed, WebSocketException, OSError):
                break
            recv_task = None
            if await self._receive(raw, ws) is _END:
                break
            drained += 1
        logger.debug(f"Drained {drained} messages from the previous connection")

    # Connections

    async def _establish(self, url: str, handover: bool = False) -> Tuple[Any, Session]:
        """
        Dial `url` until a welcome arrives, with bounded exponential backoff.

        Raises:
            SessionClosedError: If every attempt failed
        """
        attempt = 0
        while True:
            try:
                return await self._dial(url)
            except (TwitchConnectionError, ProtocolError) as e:
                attempt += 1
                logger.error(f"Connection failed: {e}")
                if attempt >= self.max_attempts:
                    raise SessionClosedError(
                        f"Giving up on {url} after {attempt} attempts"
                    ) from e
                delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
                logger.info(f"Reconnecting in {delay} seconds... (attempt {attempt + 1}/{self.max_attempts})")
                await self._sleep(delay)

    async def _dial(self, url: str) -> Tuple[Any, Session]:
        logger.info(f"Connecting to Twitch EventSub WebSocket: {url}")
        try:
            ws = await self._connect(url)
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            raise TwitchConnectionError(f"Failed to connect to Twitch EventSub: {e}") from e

        welcomed = False
        try:
            try:
                raw = await asyncio.wait_for(ws.recv(), self.welcome_timeout)
                frame = parse_frame(raw, self.config)
            except asyncio.TimeoutError as e:
                raise ProtocolError(f"No welcome message within {self.welcome_timeout}s") from e
            except (ConnectionClosed, WebSocketException, OSError) as e:
                raise TwitchConnectionError(f"Connection closed before welcome: {e}") from e
            except EnvelopeError as e:
                raise ProtocolError(f"Malformed first frame: {e}") from e

            if frame.message_type is not MessageType.SESSION_WELCOME:
                raise ProtocolError(f"Expected session_welcome, got {frame.message_type.value}")
            welcomed = True
        finally:
            # also reached when the dial is cancelled
            if not welcomed:
                await self._close_ws(ws)

        data = frame.session
        session = Session(
            id=data.id,
            keepalive_timeout=float(data.keepalive_timeout_seconds or DEFAULT_KEEPALIVE_TIMEOUT),
            status=SessionStatus.WELCOMED,
            last_message_at=time.monotonic(),
            connected_at=data.connected_at,
        )
        logger.info(f"Connected to EventSub with session ID: {session.id}")
        logger.info(f"Keepalive timeout: {session.keepalive_timeout} seconds")
        return ws, session

    async def _activate(self, ws: Any, session: Session, reconnected: bool) -> None:
        self._ws = ws
        self.session = session
        self._set_status(SessionStatus.WELCOMED)
        self._touch()
        self._set_status(SessionStatus.ACTIVE)
        if reconnected:
            logger.info("Successfully reconnected to EventSub")
        await self._trigger_callback("welcome", session, reconnected)

    async def _close_ws(self, ws: Any) -> None:
        if ws is None:
            return
        try:
            await ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error closing WebSocket: {e}")

    async def _shutdown(self) -> None:
        ws, self._ws = self._ws, None
        await self._close_ws(ws)
        self._set_status(SessionStatus.CLOSED)
        if not self._finished:
            self._finished = True
            try:
                self._queue.put_nowait(_END)
            except asyncio.QueueFull:
                # events() stops once the queue is drained
                pass

    # Helpers

    def _keepalive_window(self) -> float:
        timeout = self.session.keepalive_timeout if self.session else DEFAULT_KEEPALIVE_TIMEOUT
        return timeout + self.keepalive_grace

    def _touch(self) -> None:
        now = time.monotonic()
        if self.session is not None:
            self.session.last_message_at = now
        self._deadline = now + self._keepalive_window()

    def _set_status(self, status: SessionStatus) -> None:
        if status is self._status:
            return
        logger.debug(f"Session status: {self._status.value} -> {status.value}")
        self._status = status
        if self.session is not None:
            self.session.status = status
        for callback in self._callbacks.get("status", []):
            try:
                result = callback(status)
                if inspect.isawaitable(result):
                    # status changes happen in sync code paths
                    asyncio.ensure_future(result).add_done_callback(self._log_status_callback_error)
            except Exception as e:
                logger.error(f"Error in callback for status: {e}")

    @staticmethod
    def _log_status_callback_error(future: asyncio.Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Error in callback for status: {future.exception()}")

    async def _trigger_callback(self, name: str, *args: Any) -> None:
        """
        Trigger callbacks registered under `name`.

        Errors are logged so a failing callback cannot end the session.
        """
        for callback in self._callbacks.get(name, []):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in callback for {name}: {e}")
