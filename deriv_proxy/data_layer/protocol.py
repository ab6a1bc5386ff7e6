"""
Request builders and reply classification for the Deriv WebSocket API
"""
import json
from enum import Enum
from typing import Any, Dict, Optional, Union

from deriv_proxy.errors import UpstreamProtocolError

SUBSCRIPTION_KINDS = ("tick", "ticks", "forget")


class UpstreamEvent(str, Enum):
    AUTHORIZE = "authorize"
    AUTHORIZE_ERROR = "authorize_error"
    TICK = "tick"
    SUBSCRIPTION_ERROR = "subscription_error"
    TRADE = "trade"
    HEARTBEAT = "heartbeat"
    OTHER = "other"


def authorize_request(token: str) -> Dict[str, Any]:
    return {"authorize": token}


def ticks_request(symbol: str) -> Dict[str, Any]:
    return {"ticks": symbol, "subscribe": 1}


def forget_request(subscription_id: str) -> Dict[str, Any]:
    return {"forget": subscription_id}


def buy_request(symbol: str, stake: float, req_id: int) -> Dict[str, Any]:
    return {"buy": 1, "price": stake, "symbol": symbol, "req_id": req_id}


def ping_request() -> Dict[str, Any]:
    return {"ping": 1}


def decode(raw: Union[str, bytes]) -> Dict[str, Any]:
    """
    Parse an upstream frame

    Raises:
        UpstreamProtocolError: if the frame is not a JSON object
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise UpstreamProtocolError(f"Invalid JSON from upstream: {e}") from e
    if not isinstance(message, dict):
        raise UpstreamProtocolError(f"Unexpected upstream payload type: {type(message).__name__}")
    return message


def _request_kind(message: Dict[str, Any]) -> Optional[str]:
    msg_type = message.get("msg_type")
    if msg_type:
        return msg_type
    echo = message.get("echo_req")
    if isinstance(echo, dict):
        for key in ("authorize", "ticks", "forget", "buy", "ping"):
            if key in echo:
                return key
    return None


def classify(message: Dict[str, Any]) -> UpstreamEvent:
    """
    Work out which kind of upstream reply a decoded message is

    Errors are attributed to the request that caused them through msg_type or
    echo_req. Replies to a ticks request carry msg_type "tick". Authorize and
    subscription errors get their own events, ping errors count as heartbeat,
    anything else carrying an error is treated as a trade reply.
    """
    kind = _request_kind(message)
    has_error = bool(message.get("error"))

    if has_error:
        if kind == "authorize":
            return UpstreamEvent.AUTHORIZE_ERROR
        if kind in SUBSCRIPTION_KINDS:
            return UpstreamEvent.SUBSCRIPTION_ERROR
        if kind == "ping":
            return UpstreamEvent.HEARTBEAT
        return UpstreamEvent.TRADE

    if message.get("authorize"):
        authorize = message["authorize"]
        if isinstance(authorize, dict) and authorize.get("error"):
            return UpstreamEvent.AUTHORIZE_ERROR
        return UpstreamEvent.AUTHORIZE
    if "tick" in message:
        return UpstreamEvent.TICK
    if message.get("buy"):
        return UpstreamEvent.TRADE
    if kind == "ping":
        return UpstreamEvent.HEARTBEAT
    return UpstreamEvent.OTHER


def error_message(message: Dict[str, Any], default: str = "Unknown error") -> str:
    error = message.get("error")
    if not isinstance(error, dict):
        authorize = message.get("authorize")
        error = authorize.get("error") if isinstance(authorize, dict) else None
    if isinstance(error, dict):
        return error.get("message") or default
    return default


def tick_fields(message: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extract symbol, quote and epoch from a tick message, unchanged

    Raises:
        UpstreamProtocolError: if the tick body is missing or incomplete
    """
    tick = message.get("tick")
    if not isinstance(tick, dict) or not tick.get("symbol"):
        raise UpstreamProtocolError(f"Malformed tick payload: {tick!r}")
    return {"symbol": tick["symbol"], "quote": tick.get("quote"), "epoch": tick.get("epoch")}


def subscription_id(message: Dict[str, Any]) -> Optional[str]:
    subscription = message.get("subscription")
    if isinstance(subscription, dict) and subscription.get("id"):
        return subscription["id"]
    tick = message.get("tick")
    if isinstance(tick, dict) and tick.get("id"):
        return tick["id"]
    return None
