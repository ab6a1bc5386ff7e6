"""
HTTP request and response models
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from deriv_proxy.sockets.models import AccountInfo


class StoreTokenRequest(BaseModel):
    token: Optional[str] = Field(None, description="Deriv API token")


class StoreTokenResponse(BaseModel):
    ok: bool = True
    sessionId: str


class MeResponse(BaseModel):
    authorized: bool
    account: Optional[AccountInfo] = None


class OkResponse(BaseModel):
    ok: bool = True


class BuyRequest(BaseModel):
    symbol: Optional[str] = Field(None, description="Trading symbol")
    stake: Optional[float] = Field(None, description="Price to pay for the contract")


class BuyResponse(BaseModel):
    ok: bool = True
    result: Dict[str, Any]


class HealthResponse(BaseModel):
    status: str = "ok"
    connections: int
    sessions: int
