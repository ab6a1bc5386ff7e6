"""
Runtime settings for the Deriv client proxy
"""
import logging
import os
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()  # Load environment variables from .env file

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/proxy_config.yaml"


class Settings(BaseSettings):
    deriv_app_id: str = "71954"
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    proxy_path: str = "/client-proxy"
    session_cookie: str = "SESSION_ID"
    proxy_config_path: str = DEFAULT_CONFIG_PATH
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class UpstreamConfig(BaseModel):
    url: str = "wss://ws.derivws.com/websockets/v3"
    reconnect_attempts: int = Field(5, ge=0)
    reconnect_delay: float = Field(1.0, ge=0)
    max_reconnect_delay: float = Field(30.0, ge=0)
    heartbeat_interval: float = Field(30.0, gt=0)
    open_timeout: float = Field(10.0, gt=0)


class TradingConfig(BaseModel):
    request_timeout: float = Field(30.0, gt=0)
    uncorrelated_reply_policy: Literal["broadcast", "fifo"] = "broadcast"


class OutboundConfig(BaseModel):
    max_queue_size: int = Field(1000, ge=1)


class ProxyConfig(BaseModel):
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    outbound: OutboundConfig = Field(default_factory=OutboundConfig)


def load_proxy_config(config_path: Optional[str] = None) -> ProxyConfig:
    """
    Load proxy tuning from a YAML file

    The default path is optional: when it does not exist the built-in defaults
    are used. An explicitly given path must exist.

    Args:
        config_path: Path to the YAML file, or None for the default location

    Returns:
        The parsed proxy configuration
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        if config_path and config_path != DEFAULT_CONFIG_PATH:
            logger.error(f"Configuration file not found: {path}")
            raise FileNotFoundError(path)
        logger.info(f"No configuration file at {path}, using defaults")
        return ProxyConfig()

    try:
        with open(path, "r") as file:
            raw: Dict[str, Any] = yaml.safe_load(file) or {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file: {e}")
        raise

    return ProxyConfig.model_validate(raw)


def upstream_url(settings: Settings, config: ProxyConfig) -> str:
    return f"{config.upstream.url}?app_id={settings.deriv_app_id}"
