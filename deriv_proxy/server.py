"""
Process-scoped owner of sessions, live connections and trade correlation

Nothing here is durable: every session and connection is lost on restart.
"""
import logging
from typing import Any, Dict, Optional, Set

from deriv_proxy.data_layer.upstream_stream import Connector
from deriv_proxy.sessions import SessionStore, UpgradeGate
from deriv_proxy.settings import ProxyConfig, Settings, load_proxy_config, upstream_url
from deriv_proxy.sockets import ClientBridge, ConnectionRegistry, RequestCorrelator
from deriv_proxy.sockets.models import AccountInfo

logger = logging.getLogger(__name__)


class ProxyServer:

    def __init__(self, settings: Optional[Settings] = None, config: Optional[ProxyConfig] = None,
                 connector: Optional[Connector] = None):
        self.settings = settings or Settings()
        self.config = config or load_proxy_config(self.settings.proxy_config_path)
        self.connector = connector
        self.upstream_url = upstream_url(self.settings, self.config)

        self.session_store = SessionStore()
        self.registry = ConnectionRegistry()
        self.correlator = RequestCorrelator(
            self.registry,
            request_timeout=self.config.trading.request_timeout,
            uncorrelated_policy=self.config.trading.uncorrelated_reply_policy,
        )
        self.upgrade_gate = UpgradeGate(
            self.session_store,
            proxy_path=self.settings.proxy_path,
            cookie_name=self.settings.session_cookie,
        )

        self.bridges: Set[ClientBridge] = set()
        self.running = False

    async def start(self):
        if self.running:
            return
        self.running = True
        logger.info(f"Proxy server started, upstream {self.upstream_url}, "
                    f"proxy path {self.settings.proxy_path}")

    async def stop(self):
        """
        Stop the proxy server, closing every live client connection
        """
        if not self.running:
            return
        self.running = False

        for bridge in list(self.bridges):
            try:
                await bridge.disconnect_client()
            except Exception as e:
                logger.error(f"Error closing connection for {bridge.state}: {e}")
        self.bridges.clear()

        logger.info("Proxy server stopped")

    def create_bridge(self, websocket, session_id: Optional[str]) -> ClientBridge:
        return ClientBridge(
            websocket,
            handle=self.registry.allocate_handle(),
            session_id=session_id,
            token=self.session_store.lookup(session_id),
            registry=self.registry,
            correlator=self.correlator,
            upstream_url=self.upstream_url,
            config=self.config,
            connector=self.connector,
        )

    async def serve_client(self, websocket, session_id: Optional[str]):
        bridge = self.create_bridge(websocket, session_id)
        self.bridges.add(bridge)
        try:
            await bridge.run()
        finally:
            self.bridges.discard(bridge)

    def account_for(self, session_id: Optional[str]) -> Optional[AccountInfo]:
        """Account info from any live connection of the session that has authorized"""
        if not session_id:
            return None
        state = self.registry.find(
            lambda s: s.session_id == session_id and s.account_info is not None
        )
        return state.account_info if state else None

    async def submit_trade(self, session_id: str, symbol: str, stake: float) -> Dict[str, Any]:
        return await self.correlator.submit(session_id, symbol, stake)
