"""
Stable Connection Module

Keeps one logical chat session alive on top of short-lived physical
websockets. Physical sockets come from a transport factory and are replaced
on every reconnect; the logical connection (and its client ID) lives until
disconnect().

State machine:

    IDLE -> CONNECTING -> CONNECTED -> RECOVERING -> CONNECTED -> ... -> CLOSING -> CLOSED

CONNECTING loops on itself while the first connection keeps failing.
"""

import asyncio
import json
import logging
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from websockets.exceptions import WebSocketException

from .events import CONNECTION_CHANGED, CONNECTION_RECOVERED, HEALTH_CHECK
from .transport import WebSocketTransport
from ..exceptions import ChatConnectionError, HandshakeError

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)

# Exponent cap so long outages do not overflow the backoff computation
_MAX_BACKOFF_EXPONENT = 32


class ConnectionState(Enum):
    """Logical connection state"""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECOVERING = "recovering"
    CLOSING = "closing"
    CLOSED = "closed"


class StableConnection:
    """
    Logical websocket session with reconnect, recovery and heartbeat

    The connect future resolves with the handshake payload of the first
    successful socket. Handshake errors reject it only while the session has
    never been connected; afterwards every failure is retried with
    exponential backoff and jitter, without limit, until disconnect().
    """

    def __init__(
        self,
        url: str,
        client_id: str,
        user_id: str,
        message_callback: Callable[[str], Awaitable[None]],
        event_callback: Callable[[Dict[str, Any]], Awaitable[None]],
        recover_callback: Callable[[], Awaitable[None]],
        transport_factory: Optional[Callable[..., Any]] = None,
        ping_interval: float = 25.0,
        check_interval: float = 5.0,
        connection_timeout: float = 35.0,
        open_timeout: float = 10.0,
        initial_backoff: float = 0.25,
        max_backoff: float = 25.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize stable connection

        Args:
            url: Websocket URL with the auth query string
            client_id: Client identity, constant across reconnects
            user_id: Connected user ID
            message_callback: Coroutine receiving every raw frame after the handshake
            event_callback: Coroutine receiving the handshake, once the
                connection is healthy, and synthetic connection.changed payloads
            recover_callback: Coroutine run after every reconnect that follows a
                successful connection; must resync state before returning.
                connection.recovered is dispatched once it has returned and
                the connection is healthy again
            transport_factory: Callable(url, on_message) returning a transport;
                defaults to WebSocketTransport
            ping_interval: Seconds between outgoing health checks
            check_interval: Seconds between watchdog checks
            connection_timeout: Seconds of silence before the socket is considered dead
            open_timeout: Seconds to wait for a socket and its handshake
            initial_backoff: First reconnect window in seconds
            max_backoff: Largest reconnect window in seconds
            clock: Monotonic clock used by the watchdog
        """
        self.url = url
        self.client_id = client_id
        self.user_id = user_id
        self.message_callback = message_callback
        self.event_callback = event_callback
        self.recover_callback = recover_callback
        self.transport_factory = transport_factory or self._default_transport
        self.ping_interval = ping_interval
        self.check_interval = check_interval
        self.connection_timeout = connection_timeout
        self.open_timeout = open_timeout
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self._clock = clock

        # Connection state
        self.state = ConnectionState.IDLE
        self.transport = None
        self.connection_id: Optional[str] = None
        self.retry_count = 0
        self.ever_connected = False
        self.last_event_at: Optional[float] = None
        self._closing = False
        self._connect_future: Optional[asyncio.Future] = None
        self._rejection: Optional[Exception] = None
        self._healthy = asyncio.Event()
        self._disconnect_lock = asyncio.Lock()

        self._run_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None

    def _default_transport(self, url: str, on_message) -> WebSocketTransport:
        return WebSocketTransport(url, on_message, open_timeout=self.open_timeout)

    @property
    def is_healthy(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def connect(self) -> asyncio.Future:
        """
        Start the session, or join the attempt already in flight

        Returns:
            Future resolved with the handshake payload

        Raises:
            ChatConnectionError: If the connection was already closed
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            raise ChatConnectionError("Connection was closed, start a new session to reconnect")
        if self._connect_future is not None:
            return self._connect_future

        loop = asyncio.get_running_loop()
        self._rejection = None
        self._connect_future = loop.create_future()
        self.state = ConnectionState.CONNECTING
        self._run_task = loop.create_task(self._run())
        return self._connect_future

    async def wait_until_healthy(self):
        """
        Block until the session is connected

        Waits for the first connect and for any reconnect or recovery in
        progress.

        Raises:
            ChatConnectionError: If the session is closed meanwhile
            HandshakeError: If the first connection attempt was rejected
        """
        if self._connect_future is None:
            if self._rejection is not None:
                raise HandshakeError(
                    f"Connection was rejected: {self._rejection}",
                    code=getattr(self._rejection, "code", None),
                    status=getattr(self._rejection, "status", None)
                ) from self._rejection
            raise ChatConnectionError("connect() has not been called")
        await asyncio.shield(self._connect_future)
        await self._healthy.wait()
        if self._closing:
            raise ChatConnectionError("Connection was closed")

    def note_health_check(self):
        """Reset the heartbeat watchdog"""
        self.last_event_at = self._clock()

    def retry_interval(self) -> float:
        """Backoff delay for the next attempt: exponential window, jittered in its upper half"""
        exponent = min(self.retry_count, _MAX_BACKOFF_EXPONENT)
        ceiling = min(self.initial_backoff * (2 ** exponent), self.max_backoff)
        return random.uniform(ceiling / 2, ceiling)

    async def _run(self):
        """Connect/serve/reconnect loop; runs until disconnect() or a first-attempt rejection"""
        while not self._closing:
            try:
                handshake = await self._open_transport()
            except HandshakeError as e:
                if not self.ever_connected:
                    logger.error(f"Connection handshake rejected: {e}")
                    self._reject(e)
                    return
                # Tokens may have been refreshed server side; keep trying
                logger.warning(f"Handshake rejected on reconnect, retrying: {e}")
            except RETRYABLE_ERRORS as e:
                logger.warning(f"Connection attempt failed: {type(e).__name__} - {e}")
            except Exception as e:
                logger.error(f"Unexpected error opening connection: {e}", exc_info=True)
            else:
                if await self._establish(handshake):
                    await self._serve()

            if self._closing:
                break
            await self._sleep_before_retry()

    async def _open_transport(self) -> Dict[str, Any]:
        self.transport = self.transport_factory(self.url, self._on_frame)
        return await self.transport.open()

    async def _on_frame(self, frame: str):
        self.last_event_at = self._clock()
        try:
            await self.message_callback(frame)
        except Exception as e:
            logger.error(f"Error handling frame: {e}", exc_info=True)

    async def _establish(self, handshake: Dict[str, Any]) -> bool:
        """
        Finish a successful open: recover if needed, then mark healthy

        The handshake event is dispatched only once the connection is healthy,
        so listeners may issue queries while handling it.

        Returns:
            True if the connection is usable, False if recovery failed and the
            socket was closed
        """
        self.connection_id = handshake.get("connection_id")
        self.last_event_at = self._clock()
        recovering = self.ever_connected
        if recovering:
            self.state = ConnectionState.RECOVERING

        self._start_heartbeat()

        if recovering:
            try:
                await self.recover_callback()
            except Exception as e:
                logger.warning(f"State recovery failed, reconnecting: {e}", exc_info=True)
                self._stop_heartbeat()
                await self.transport.close(code=1011, reason="recovery failed")
                return False

        self.retry_count = 0
        self.ever_connected = True
        self.state = ConnectionState.CONNECTED
        self._healthy.set()
        if self._connect_future is not None and not self._connect_future.done():
            self._connect_future.set_result(handshake)

        logger.info(f"WebSocket connected (connection_id={self.connection_id}, recovered={recovering})")
        await self.event_callback(handshake)
        await self.event_callback({"type": CONNECTION_CHANGED, "online": True})
        if recovering:
            await self.event_callback({"type": CONNECTION_RECOVERED})
        return True

    async def _serve(self):
        """Read frames until the socket drops"""
        try:
            code, reason = await self.transport.run()
        except Exception as e:
            logger.error(f"WebSocket reader failed: {e}", exc_info=True)
            self.transport.abort()
            code, reason = None, f"reader failed: {e}"
        finally:
            self._stop_heartbeat()
        if self._closing:
            return

        logger.warning(f"WebSocket connection lost (code={code}, reason={reason!r}), reconnecting")
        self.state = ConnectionState.CONNECTING
        # Listeners of the offline event may still query without waiting on the reconnect
        await self.event_callback({"type": CONNECTION_CHANGED, "online": False})
        self._healthy.clear()

    async def _sleep_before_retry(self):
        delay = self.retry_interval()
        self.retry_count += 1
        logger.info(f"Reconnecting in {delay:.2f} seconds (attempt {self.retry_count})")
        await asyncio.sleep(delay)

    def _reject(self, error: Exception):
        self.state = ConnectionState.IDLE
        self.transport = None
        self._rejection = error
        future, self._connect_future = self._connect_future, None
        if future is not None and not future.done():
            future.set_exception(error)

    def _start_heartbeat(self):
        self._stop_heartbeat()
        loop = asyncio.get_running_loop()
        self._ping_task = loop.create_task(self._ping_loop())
        self._watchdog_task = loop.create_task(self._watchdog_loop())

    def _stop_heartbeat(self):
        current = asyncio.current_task()
        for task in (self._ping_task, self._watchdog_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._ping_task = None
        self._watchdog_task = None

    async def _ping_loop(self):
        """Send a health check every ping_interval"""
        while True:
            await asyncio.sleep(self.ping_interval)
            payload = json.dumps([{
                "type": HEALTH_CHECK,
                "client_id": self.client_id,
                "user_id": self.user_id
            }])
            try:
                await self.transport.send(payload)
            except (WebSocketException, OSError) as e:
                logger.debug(f"Health check send failed: {e}")
                return
            logger.debug("Sent health check")

    async def _watchdog_loop(self):
        """Abort the socket when nothing arrived within connection_timeout"""
        while True:
            await asyncio.sleep(self.check_interval)
            idle = self._clock() - (self.last_event_at or 0.0)
            if idle > self.connection_timeout:
                logger.warning(f"No health check for {idle:.1f} seconds, dropping connection")
                self.transport.abort()
                return

    async def disconnect(self, code: int = 1000, reason: str = "Normal closure"):
        """
        Close the session for good

        Stops the heartbeat, closes the socket without reconnecting, cancels
        any pending reconnect and fails a connect future that never resolved.
        """
        async with self._disconnect_lock:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return
            self.state = ConnectionState.CLOSING
            self._closing = True
            self._stop_heartbeat()

            if self.transport is not None:
                await self.transport.close(code=code, reason=reason)

            if self._run_task is not None and self._run_task is not asyncio.current_task():
                if not self._run_task.done():
                    self._run_task.cancel()
                    try:
                        await self._run_task
                    except asyncio.CancelledError:
                        pass

            if self._connect_future is not None and not self._connect_future.done():
                self._connect_future.set_exception(
                    ChatConnectionError("Disconnected before the connection was established")
                )
            # Wake anyone blocked in wait_until_healthy; they will see the closed state
            self._healthy.set()
            self.transport = None
            self.state = ConnectionState.CLOSED

        logger.info("Disconnected from WebSocket")
