"""
Per-client bridge between a browser socket and its private upstream socket
"""
import asyncio
import contextlib
import json
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional, Set, Union

from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect
from websockets.exceptions import WebSocketException

from deriv_proxy.data_layer import protocol
from deriv_proxy.data_layer.protocol import UpstreamEvent
from deriv_proxy.data_layer.upstream_stream import Connector, UpstreamStream
from deriv_proxy.errors import UpstreamProtocolError, UpstreamUnavailable
from deriv_proxy.settings import ProxyConfig
from .connection_registry import ConnectionRegistry
from .connection_state import ConnectionHandle, ConnectionState
from .models import (
    AccountInfo, AuthorizedMessage, BalanceMessage, BuyResultMessage, ConfigMessage,
    ErrorMessage, ServerMessage, SubscribeMessage, SubscribedMessage, TickMessage,
    UnsubscribeMessage, UnsubscribedMessage, parse_client_message
)
from .outbound_queue import OutboundQueue
from .request_correlator import RequestCorrelator

logger = logging.getLogger(__name__)

UPSTREAM_ERRORS = (ConnectionError, OSError, asyncio.TimeoutError, WebSocketException)


class BridgeState(str, Enum):
    CONNECTING = "connecting"
    AUTHORIZING = "authorizing"
    READY = "ready"
    RECONNECTING = "reconnecting"
    DETACHED = "detached"
    CLOSED = "closed"


class ClientBridge:
    """
    Runs one client connection: opens the upstream socket, authorizes it when
    the session has a token, and forwards messages in both directions until
    the client goes away.
    """
    def __init__(self, websocket, handle: ConnectionHandle, session_id: Optional[str],
                 token: Optional[str], registry: ConnectionRegistry, correlator: RequestCorrelator,
                 upstream_url: str, config: ProxyConfig, connector: Optional[Connector] = None):
        """
        Initialize the bridge

        Args:
            websocket: The accepted client WebSocket
            handle: Registry handle for this connection
            session_id: Session carried by the client, None when anonymous
            token: Upstream token for the session, None when anonymous
            registry: Registry of live connections
            correlator: Trade request correlator
            upstream_url: Deriv WebSocket URL including app_id
            config: Proxy tuning
            connector: Optional replacement for websockets.connect
        """
        self.websocket = websocket
        self.token = token
        self.registry = registry
        self.correlator = correlator
        self.upstream_url = upstream_url
        self.config = config
        self.connector = connector

        self.state = ConnectionState(handle, session_id)
        self.phase = BridgeState.CONNECTING
        self.outbound = OutboundQueue(config.outbound.max_queue_size)
        self.upstream_task: Optional[asyncio.Task] = None
        self.writer_task: Optional[asyncio.Task] = None
        self._forgotten: Set[str] = set()

    @property
    def session_id(self) -> Optional[str]:
        return self.state.session_id

    async def run(self):
        """Serve the client until it disconnects"""
        self.registry.register(self.state.handle, self.state)
        logger.info(f"client connected, session={self.session_id}")

        self.writer_task = asyncio.create_task(self._write_loop())
        self.upstream_task = asyncio.create_task(self._upstream_loop())
        try:
            while True:
                frame = await self.websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                raw = frame.get("text")
                if raw is None:
                    raw = frame.get("bytes") or b""
                self.state.last_activity = time.time()
                await self.handle_client_message(raw)
        finally:
            await self.close()

    async def close(self):
        """Tear down the upstream side and deregister; safe to call twice"""
        if self.phase == BridgeState.CLOSED:
            return
        self.phase = BridgeState.CLOSED
        logger.info(f"client disconnected, session={self.session_id}")

        if self.state.upstream is not None:
            await self.state.upstream.close()
        await self._cancel(self.upstream_task)
        self.outbound.close()
        await self._cancel(self.writer_task)

        self.registry.deregister(self.state.handle)
        self.correlator.fail_all(self.state, UpstreamUnavailable("client disconnected"))

    async def disconnect_client(self, code: int = 1001):
        """Close the client socket from the server side, then tear down"""
        try:
            await self.websocket.close(code=code)
        except RuntimeError as e:
            logger.debug(f"Client socket already closed for {self.state}: {e}")
        await self.close()

    # Client -> upstream

    async def handle_client_message(self, raw: Union[str, bytes]):
        try:
            message = parse_client_message(raw)
        except ValidationError as e:
            logger.warning(f"client msg err from {self.state}: {e.error_count()} validation error(s)")
            return

        if isinstance(message, SubscribeMessage):
            await self.subscribe(message.symbol)
        elif isinstance(message, UnsubscribeMessage):
            await self.unsubscribe(message.symbol)
        elif isinstance(message, ConfigMessage):
            logger.info(f"Client config from {self.state}: {message.model_dump(exclude={'type'})}")

    async def subscribe(self, symbol: str):
        """
        Subscribe to ticks for a symbol

        Every call sends its own upstream request; repeated subscriptions are
        not deduplicated.
        """
        if not self.state.upstream_open:
            logger.warning(f"Subscribe to {symbol} while upstream closed for {self.state}")
            self.send_to_client(ErrorMessage(message=f"upstream not connected, cannot subscribe to {symbol}"))
            return

        self.state.subscribed.add(symbol)
        if not await self._send_upstream(protocol.ticks_request(symbol)):
            self.state.subscribed.discard(symbol)
            self.send_to_client(ErrorMessage(message=f"failed to subscribe to {symbol}"))
            return

        logger.info(f"Subscribing {self.state} to tick data for {symbol}")
        self.send_to_client(SubscribedMessage(symbol=symbol))

    async def unsubscribe(self, symbol: str):
        subscription_ids = self.state.subscription_ids.pop(symbol, set())
        for sub_id in sorted(subscription_ids):
            self._forgotten.add(sub_id)
            if self.state.upstream_open:
                await self._send_upstream(protocol.forget_request(sub_id))

        self.state.subscribed.discard(symbol)
        logger.info(f"Unsubscribing {self.state} from tick data for {symbol}")
        self.send_to_client(UnsubscribedMessage(symbol=symbol))

    # Upstream -> client

    async def handle_upstream_message(self, raw: Union[str, bytes]):
        try:
            message = protocol.decode(raw)
            event = protocol.classify(message)

            if event == UpstreamEvent.AUTHORIZE:
                self._on_authorized(message)
            elif event == UpstreamEvent.AUTHORIZE_ERROR:
                reason = protocol.error_message(message, "authorization failed")
                logger.error(f"Authentication failed for {self.state}: {reason}")
                self.send_to_client(ErrorMessage(message=reason))
            elif event == UpstreamEvent.TICK:
                await self._on_tick(message)
            elif event == UpstreamEvent.TRADE:
                self._on_trade_reply(message)
            elif event == UpstreamEvent.SUBSCRIPTION_ERROR:
                reason = protocol.error_message(message)
                logger.warning(f"Subscription error for {self.state}: {reason}")
                self.send_to_client(ErrorMessage(message=reason))
            elif event == UpstreamEvent.HEARTBEAT and message.get("error"):
                logger.warning(f"Heartbeat error for {self.state}: {protocol.error_message(message)}")
            elif event == UpstreamEvent.OTHER:
                logger.debug(f"Unhandled upstream message type: {message.get('msg_type')}")
        except UpstreamProtocolError as e:
            logger.warning(f"Dropped upstream payload for {self.state}: {e}")

    def _on_authorized(self, message: Dict[str, Any]):
        authorize = message["authorize"]
        if not isinstance(authorize, dict):
            raise UpstreamProtocolError(f"Malformed authorize payload: {authorize!r}")
        try:
            account = AccountInfo(
                loginid=authorize.get("loginid"),
                currency=authorize.get("currency"),
                balance=authorize.get("balance"),
            )
        except ValidationError as e:
            raise UpstreamProtocolError(f"Malformed account info: {e}") from e

        self.state.account_info = account
        self.state.authorized = True
        self.phase = BridgeState.READY
        logger.info(f"Successfully authenticated {self.state} as {account.loginid}")

        self.send_to_client(AuthorizedMessage(account=account))
        self.send_to_client(BalanceMessage(balance=account.balance))

    async def _on_tick(self, message: Dict[str, Any]):
        fields = protocol.tick_fields(message)
        symbol = fields["symbol"]
        sub_id = protocol.subscription_id(message)

        if symbol not in self.state.subscribed:
            if sub_id and sub_id not in self._forgotten:
                self._forgotten.add(sub_id)
                await self._send_upstream(protocol.forget_request(sub_id))
            return

        if sub_id:
            self.state.subscription_ids.setdefault(symbol, set()).add(sub_id)
        self.send_to_client(TickMessage(**fields), droppable=True)

    def _on_trade_reply(self, message: Dict[str, Any]):
        self.send_to_client(BuyResultMessage(result=message))
        resolved = self.correlator.resolve(self.state, message)
        if resolved:
            logger.info(f"Resolved {resolved} trade request(s) on {self.state}")

    # Upstream lifecycle

    async def _upstream_loop(self):
        upstream_config = self.config.upstream
        attempt = 0
        while self.phase != BridgeState.CLOSED:
            upstream = UpstreamStream(self.upstream_url, upstream_config, self.connector)
            self.state.upstream = upstream
            try:
                await upstream.connect()
            except UPSTREAM_ERRORS as e:
                logger.error(f"Error connecting upstream for {self.state}: {e}")
            else:
                attempt = 0
                await self._on_upstream_open()
                async for raw in upstream.messages():
                    await self.handle_upstream_message(raw)
                logger.info(f"deriv ws closed for session {self.session_id}")
                self._on_upstream_lost()

            if self.phase == BridgeState.CLOSED:
                break
            if attempt >= upstream_config.reconnect_attempts:
                logger.error(f"Failed to reconnect upstream for {self.state} after maximum attempts")
                self.phase = BridgeState.DETACHED
                self.send_to_client(ErrorMessage(message="upstream connection lost"))
                break

            delay = min(upstream_config.reconnect_delay * 2 ** attempt, upstream_config.max_reconnect_delay)
            attempt += 1
            self.phase = BridgeState.RECONNECTING
            logger.info(f"Reconnection attempt {attempt}/{upstream_config.reconnect_attempts} "
                        f"for {self.state} in {delay:.1f}s")
            await asyncio.sleep(delay)

    async def _on_upstream_open(self):
        logger.info(f"deriv ws open for session {self.session_id}")
        self.state.subscription_ids.clear()
        self._forgotten.clear()

        if self.token:
            self.phase = BridgeState.AUTHORIZING
            await self._send_upstream(protocol.authorize_request(self.token))
            logger.info(f"Authentication request sent for {self.state}")
        else:
            self.phase = BridgeState.READY

        for symbol in sorted(self.state.subscribed):
            await self._send_upstream(protocol.ticks_request(symbol))
            logger.info(f"Re-subscribed {self.state} to {symbol}")

    def _on_upstream_lost(self):
        self.state.authorized = False
        self.state.account_info = None
        self.correlator.fail_all(self.state, UpstreamUnavailable("upstream connection lost"))

    async def _send_upstream(self, message: Dict[str, Any]) -> bool:
        upstream = self.state.upstream
        if upstream is None:
            return False
        try:
            await upstream.send(message)
            return True
        except UPSTREAM_ERRORS as e:
            logger.error(f"Error sending upstream message for {self.state}: {e}")
            return False

    # Client writer

    def send_to_client(self, message: ServerMessage, droppable: bool = False):
        self.outbound.put(message.to_wire(), droppable=droppable)

    async def _write_loop(self):
        while True:
            message = await self.outbound.get()
            if message is None:
                break
            try:
                await self.websocket.send_text(json.dumps(message))
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info(f"Connection already closed for {self.state}: {e}")
                break

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]):
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
