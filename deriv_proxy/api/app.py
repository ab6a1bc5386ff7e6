"""
FastAPI application factory
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deriv_proxy import __version__
from deriv_proxy.data_layer.upstream_stream import Connector
from deriv_proxy.errors import ProxyError
from deriv_proxy.server import ProxyServer
from deriv_proxy.settings import ProxyConfig, Settings
from .http_router import http_router
from .ws_router import ws_router

logger = logging.getLogger(__name__)


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"ok": False, "error": "invalid request body"})


def create_app(settings: Optional[Settings] = None, config: Optional[ProxyConfig] = None,
               connector: Optional[Connector] = None) -> FastAPI:
    """
    Build the proxy application

    Args:
        settings: Runtime settings, read from the environment when omitted
        config: Proxy tuning, loaded from the YAML file when omitted
        connector: Optional replacement for websockets.connect

    Returns:
        The FastAPI app; its lifespan starts and stops the ProxyServer
    """
    proxy = ProxyServer(settings=settings, config=config, connector=connector)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await proxy.start()
        try:
            yield
        finally:
            await proxy.stop()

    app = FastAPI(
        title="Deriv Client Proxy",
        description="Per-session WebSocket bridge to the Deriv trading API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.proxy = proxy

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(http_router)
    app.include_router(ws_router)
    return app
