"""
HTTP and WebSocket endpoints
"""
from .app import create_app
from .http_router import http_router
from .ws_router import ws_router

__all__ = [
    'create_app',
    'http_router',
    'ws_router',
]
