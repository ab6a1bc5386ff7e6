import pytest

from deriv_proxy.settings import OutboundConfig, ProxyConfig, Settings, TradingConfig, UpstreamConfig


@pytest.fixture
def proxy_config():
    """Test configuration: no reconnects, quiet heartbeat, short trade timeout"""
    return ProxyConfig(
        upstream=UpstreamConfig(
            url="wss://upstream.test/websockets/v3",
            reconnect_attempts=0,
            reconnect_delay=0,
            heartbeat_interval=3600,
            open_timeout=1,
        ),
        trading=TradingConfig(request_timeout=1.0),
        outbound=OutboundConfig(max_queue_size=100),
    )


@pytest.fixture
def settings():
    return Settings(deriv_app_id="1234", proxy_config_path="does-not-matter.yaml")
