import logging

from fastapi import APIRouter, WebSocket, status
from starlette.websockets import WebSocketState

from deriv_proxy.server import ProxyServer

logger = logging.getLogger(__name__)

ws_router = APIRouter(tags=["websocket"])


@ws_router.websocket("/{path:path}")
async def client_proxy_endpoint(websocket: WebSocket, path: str):
    """
    Every socket upgrade lands here; the upgrade gate decides whether it is
    on the proxy route and which session it carries.
    """
    proxy: ProxyServer = websocket.app.state.proxy
    admission = proxy.upgrade_gate.admit(websocket.url.path, websocket.headers.get("cookie"))
    if not admission.accepted:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    try:
        await proxy.serve_client(websocket, admission.session_id)
    except Exception as e:
        logger.error(f"WebSocket error: {str(e)}")
        if websocket.application_state != WebSocketState.DISCONNECTED:
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
