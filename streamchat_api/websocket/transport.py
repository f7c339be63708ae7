"""
WebSocket Transport Module

One physical websocket attempt: open the socket, read the handshake frame,
pump frames to a callback until the socket closes. There is no retry logic
here; StableConnection replaces the transport on every reconnect.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, InvalidStatus

from ..exceptions import HandshakeError

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], Awaitable[None]]


def parse_handshake(frame: Any) -> Dict[str, Any]:
    """
    Validate the first frame received on a socket

    Args:
        frame: Raw frame (text or bytes)

    Returns:
        Decoded handshake payload

    Raises:
        HandshakeError: If the frame is not a JSON object or carries an error
    """
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as e:
            raise HandshakeError(f"Malformed handshake frame: {e}") from e
    try:
        payload = json.loads(frame)
    except (TypeError, ValueError) as e:
        raise HandshakeError(f"Malformed handshake frame: {e}") from e
    if not isinstance(payload, dict):
        raise HandshakeError("Malformed handshake frame: expected an object")
    if payload.get("error") is not None:
        raise HandshakeError.from_payload(payload)
    return payload


class WebSocketTransport:
    """Single websocket connection attempt"""

    def __init__(
        self,
        url: str,
        on_message: MessageCallback,
        headers: Optional[Dict[str, str]] = None,
        open_timeout: float = 10.0,
        close_timeout: float = 2.0
    ):
        """
        Initialize transport

        Args:
            url: Full websocket URL including the auth query string
            on_message: Coroutine called with every text frame after the handshake
            headers: Extra HTTP headers for the upgrade request
            open_timeout: Seconds to wait for the socket and the handshake frame
            close_timeout: Seconds to wait for the closing handshake
        """
        self.url = url
        self.on_message = on_message
        self.headers = headers or {}
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.websocket = None

    async def open(self) -> Dict[str, Any]:
        """
        Open the socket and wait for the handshake frame

        Returns:
            Decoded handshake payload

        Raises:
            HandshakeError: Rejected upgrade (401/403) or handshake frame
            OSError, asyncio.TimeoutError, WebSocketException: Network failures
        """
        try:
            self.websocket = await websockets.connect(
                self.url,
                additional_headers=self.headers,
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
                ping_interval=None  # health checks are handled by StableConnection
            )
        except InvalidStatus as e:
            status = e.response.status_code
            if status in (401, 403):
                raise HandshakeError(f"Connection rejected with HTTP {status}", status=status) from e
            raise

        try:
            frame = await asyncio.wait_for(self.websocket.recv(), timeout=self.open_timeout)
            return parse_handshake(frame)
        except BaseException:
            await self.close(code=1002, reason="handshake failed")
            raise

    async def run(self) -> Tuple[Optional[int], str]:
        """
        Pump frames to on_message until the socket closes

        Returns:
            (close code, close reason)
        """
        if self.websocket is None:
            return None, "not open"
        try:
            async for frame in self.websocket:
                if isinstance(frame, str):
                    await self.on_message(frame)
                else:
                    logger.warning(f"Received non-text frame: {type(frame)}")
        except ConnectionClosed:
            logger.debug("WebSocket connection closed")
        except OSError as e:
            logger.warning(f"WebSocket read failed: {e}")
        return self.websocket.close_code, self.websocket.close_reason or ""

    async def send(self, data: str):
        """Send a text frame"""
        if self.websocket is None:
            raise ConnectionError("Transport is not open")
        await self.websocket.send(data)

    async def close(self, code: int = 1000, reason: str = "Normal closure"):
        """Close the socket with a closing handshake"""
        if self.websocket is None:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except ConnectionClosed:
            pass
        except OSError as e:
            logger.debug(f"Error closing WebSocket: {e}")

    def abort(self):
        """Drop the underlying TCP connection without a closing handshake"""
        if self.websocket is not None and self.websocket.transport is not None:
            self.websocket.transport.abort()
