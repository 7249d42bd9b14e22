"""
WebSocket client infrastructure with heartbeat and reconnection.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp


logger = logging.getLogger(__name__)


class WebSocketClient:
    """Async WebSocket client that yields text frames across reconnects.

    After every (re)connect the ``subscribe`` messages are sent again, so an
    event feed that needs a subscription request resumes on its own. The
    message stream ends only once ``max_reconnect_attempts`` consecutive
    connection attempts have failed.
    """

    def __init__(
        self,
        url: str,
        heartbeat_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        max_reconnect_attempts: int = 10,
        subscribe: Optional[List[Dict[str, Any]]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.subscribe = list(subscribe or [])

        self._external_session = session
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reconnect_count = 0
        self._closed = False

    async def __aenter__(self) -> "WebSocketClient":
        return self

    async def __aexit__(self, *_) -> None:
        await self.disconnect()

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def backoff_delay(self, attempt: int) -> float:
        """Exponential back-off for the given 1-based reconnect attempt."""
        return self.reconnect_delay * (2 ** (attempt - 1))

    async def connect(self) -> None:
        """Open the socket and send subscription messages."""
        session = self._external_session
        if session is None:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
            session = self._session

        self._ws = await session.ws_connect(self.url, heartbeat=self.heartbeat_interval)
        self._reconnect_count = 0
        logger.info(f"Connected to WebSocket: {self.url}")

        for message in self.subscribe:
            await self.send_json(message)

    async def disconnect(self) -> None:
        """Disconnect from the WebSocket."""
        self._closed = True

        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        if self._session:
            await self._session.close()
            self._session = None

        logger.info("Disconnected from WebSocket")

    async def send_text(self, message: str) -> None:
        """Send a text message."""
        if self.connected:
            await self._ws.send_str(message)
        else:
            logger.warning("Cannot send message: WebSocket not connected")

    async def send_json(self, data: Dict[str, Any]) -> None:
        """Send a JSON message."""
        await self.send_text(json.dumps(data))

    async def _ensure_connected(self) -> bool:
        """Connect, retrying with back-off; False once attempts are exhausted."""
        if self.connected:
            return True
        while not self._closed:
            try:
                await self.connect()
                return True
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.error(f"Failed to connect to WebSocket {self.url}: {e}")

            if self._reconnect_count >= self.max_reconnect_attempts:
                logger.error(f"Max reconnect attempts ({self.max_reconnect_attempts}) reached")
                return False

            self._reconnect_count += 1
            delay = self.backoff_delay(self._reconnect_count)
            logger.info(f"Scheduling reconnect attempt {self._reconnect_count} in {delay}s")
            await asyncio.sleep(delay)
        return False

    async def messages(self) -> AsyncIterator[str]:
        """Yield incoming text frames until the upstream is exhausted."""
        while await self._ensure_connected():
            msg = await self._ws.receive()

            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
                continue

            if msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(f"WebSocket error: {self._ws.exception()}")
            elif msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
            ):
                logger.info("WebSocket connection closed by peer")
            else:
                # pings, pongs and binary frames carry no events
                continue

            if self._ws and not self._ws.closed:
                await self._ws.close()
            self._ws = None
