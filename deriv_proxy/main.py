#!/usr/bin/env python3
"""
Run the Deriv client proxy
"""
import logging
import sys

import uvicorn

from deriv_proxy.api import create_app
from deriv_proxy.settings import Settings, load_proxy_config

logger = logging.getLogger(__name__)


def main():
    settings = Settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        config = load_proxy_config(settings.proxy_config_path)
    except Exception as e:
        logger.error(f"Invalid proxy configuration: {e}")
        sys.exit(1)

    app = create_app(settings=settings, config=config)

    logger.info(f"Deriv app_id: {settings.deriv_app_id}")
    logger.info(f"Proxy server running on http://{settings.api_host}:{settings.api_port}")
    logger.info(f"WebSocket proxy path: {settings.proxy_path}")

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
