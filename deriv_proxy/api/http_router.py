import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from deriv_proxy.errors import AuthError, ValidationError
from deriv_proxy.server import ProxyServer
from .models import (
    BuyRequest, BuyResponse, HealthResponse, MeResponse, OkResponse,
    StoreTokenRequest, StoreTokenResponse
)

logger = logging.getLogger(__name__)

http_router = APIRouter(tags=["session"])


def get_proxy(request: Request) -> ProxyServer:
    return request.app.state.proxy


def _session_id(request: Request, proxy: ProxyServer) -> Optional[str]:
    return request.cookies.get(proxy.settings.session_cookie)


@http_router.post("/store-token", response_model=StoreTokenResponse)
async def store_token(response: Response, payload: Optional[StoreTokenRequest] = None,
                      proxy: ProxyServer = Depends(get_proxy)):
    """Store an upstream token server-side and hand back a session cookie"""
    token = payload.token if payload else None
    session_id = proxy.session_store.create(token or "")

    response.set_cookie(proxy.settings.session_cookie, session_id, httponly=True, samesite="lax")
    return StoreTokenResponse(ok=True, sessionId=session_id)


@http_router.get("/me", response_model=MeResponse)
async def me(request: Request, proxy: ProxyServer = Depends(get_proxy)):
    """Account info once some live connection of this session has authorized upstream"""
    session_id = _session_id(request, proxy)
    if proxy.session_store.lookup(session_id) is None:
        return JSONResponse(status_code=401, content={"authorized": False})

    # A known session reports authorized even before upstream authorization
    return MeResponse(authorized=True, account=proxy.account_for(session_id))


@http_router.post("/logout", response_model=OkResponse)
async def logout(request: Request, response: Response, proxy: ProxyServer = Depends(get_proxy)):
    session_id = _session_id(request, proxy)
    if session_id:
        proxy.session_store.delete(session_id)
        response.delete_cookie(proxy.settings.session_cookie)
    return OkResponse(ok=True)


@http_router.post("/api/buy", response_model=BuyResponse)
async def buy(request: Request, payload: Optional[BuyRequest] = None,
              proxy: ProxyServer = Depends(get_proxy)):
    """Submit a buy through the session's ready upstream connection"""
    session_id = _session_id(request, proxy)
    if proxy.session_store.lookup(session_id) is None:
        raise AuthError("not logged")

    symbol = payload.symbol if payload else None
    stake = payload.stake if payload else None
    if not symbol or not stake:
        raise ValidationError("missing params")

    result = await proxy.submit_trade(session_id, symbol, stake)
    return BuyResponse(ok=True, result=result)


@http_router.get("/api/health", response_model=HealthResponse)
async def health_check(proxy: ProxyServer = Depends(get_proxy)):
    return HealthResponse(
        status="ok",
        connections=len(proxy.registry),
        sessions=len(proxy.session_store),
    )
