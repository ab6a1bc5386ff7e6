"""
WebSocket message models exchanged with browser clients
"""
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class WSMessageType(str, Enum):
    # Client -> server
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    CONFIG = "config"

    # Server -> client
    AUTHORIZED = "authorized"
    BALANCE = "balance"
    TICK = "tick"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    BUY_RESULT = "buy_result"
    ERROR = "error"


class AccountInfo(BaseModel):
    loginid: Optional[str] = None
    currency: Optional[str] = None
    balance: Optional[Union[int, float]] = None


class SubscribeMessage(BaseModel):
    type: Literal["subscribe"]
    symbol: str = Field(..., min_length=1, description="Symbol to stream ticks for")


class UnsubscribeMessage(BaseModel):
    type: Literal["unsubscribe"]
    symbol: str = Field(..., min_length=1, description="Symbol to stop streaming")


class ConfigMessage(BaseModel):
    """Client preferences; accepted and logged only"""
    model_config = ConfigDict(extra="allow")

    type: Literal["config"]


ClientMessage = Annotated[
    Union[SubscribeMessage, UnsubscribeMessage, ConfigMessage],
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: Union[str, bytes]) -> Union[SubscribeMessage, UnsubscribeMessage, ConfigMessage]:
    """
    Parse a raw client frame

    Raises:
        pydantic.ValidationError: on invalid JSON, unknown type or missing fields
    """
    return _client_message_adapter.validate_json(raw)


class ServerMessage(BaseModel):
    type: WSMessageType

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class AuthorizedMessage(ServerMessage):
    type: WSMessageType = WSMessageType.AUTHORIZED
    account: AccountInfo


class BalanceMessage(ServerMessage):
    type: WSMessageType = WSMessageType.BALANCE
    balance: Optional[Union[int, float]] = None


class TickMessage(ServerMessage):
    type: WSMessageType = WSMessageType.TICK
    symbol: str
    quote: Any = None
    epoch: Any = None


class SubscribedMessage(ServerMessage):
    type: WSMessageType = WSMessageType.SUBSCRIBED
    symbol: str


class UnsubscribedMessage(ServerMessage):
    type: WSMessageType = WSMessageType.UNSUBSCRIBED
    symbol: str


class BuyResultMessage(ServerMessage):
    type: WSMessageType = WSMessageType.BUY_RESULT
    result: Dict[str, Any]


class ErrorMessage(ServerMessage):
    type: WSMessageType = WSMessageType.ERROR
    message: str
