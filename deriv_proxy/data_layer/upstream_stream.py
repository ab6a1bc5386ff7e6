"""
Single upstream WebSocket connection to the Deriv API
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from deriv_proxy.settings import UpstreamConfig
from .protocol import ping_request

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class UpstreamStream:
    """
    One asyncio WebSocket to the Deriv API

    Wraps connect, JSON send, frame iteration, an application-level heartbeat
    and close. The connector is injectable so tests can run without a network.
    """
    def __init__(self, url: str, config: UpstreamConfig, connector: Optional[Connector] = None):
        self.url = url
        self.config = config
        self.connector = connector or websockets.connect

        self.ws = None
        self.is_connected = False
        self.heartbeat_task: Optional[asyncio.Task] = None

    async def connect(self):
        """
        Open the socket and start the heartbeat

        Raises:
            OSError, asyncio.TimeoutError, WebSocketException
        """
        logger.info(f"Connecting to Deriv WebSocket: {self.url}")
        self.ws = await asyncio.wait_for(self.connector(self.url), timeout=self.config.open_timeout)
        self.is_connected = True
        self.heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        logger.info("Upstream WebSocket connection opened")

    async def send(self, message: Dict[str, Any]):
        if self.ws is None or not self.is_connected:
            raise ConnectionError("Upstream WebSocket not connected")
        await self.ws.send(json.dumps(message))

    async def messages(self) -> AsyncIterator[Any]:
        """Yield raw frames until the upstream closes"""
        if self.ws is None:
            return
        try:
            async for raw in self.ws:
                yield raw
        except ConnectionClosed as e:
            logger.info(f"Upstream WebSocket connection closed: {e}")
        finally:
            self.is_connected = False
            self._stop_heartbeat()

    async def close(self):
        self.is_connected = False
        self._stop_heartbeat()
        if self.ws is None:
            return
        try:
            await self.ws.close()
        except Exception as e:
            logger.error(f"Error closing upstream WebSocket: {e}")

    def _stop_heartbeat(self):
        if self.heartbeat_task and not self.heartbeat_task.done():
            self.heartbeat_task.cancel()
        self.heartbeat_task = None

    async def _heartbeat_loop(self):
        try:
            while self.is_connected:
                await asyncio.sleep(self.config.heartbeat_interval)
                if not self.is_connected:
                    break
                await self.send(ping_request())
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Heartbeat error: {e}")
