"""
Tests for upstream request builders and reply classification
"""
import pytest

from deriv_proxy.data_layer import protocol
from deriv_proxy.data_layer.protocol import UpstreamEvent
from deriv_proxy.errors import UpstreamProtocolError


def test_request_builders_match_upstream_shapes():
    assert protocol.authorize_request("abc") == {"authorize": "abc"}
    assert protocol.ticks_request("R_100") == {"ticks": "R_100", "subscribe": 1}
    assert protocol.forget_request("sub-1") == {"forget": "sub-1"}
    assert protocol.buy_request("R_100", 10, 7) == {"buy": 1, "price": 10, "symbol": "R_100", "req_id": 7}


@pytest.mark.parametrize("message, expected", [
    ({"authorize": {"loginid": "CR1"}}, UpstreamEvent.AUTHORIZE),
    ({"authorize": {"error": {"message": "bad token"}}}, UpstreamEvent.AUTHORIZE_ERROR),
    ({"error": {"message": "InvalidToken"}, "msg_type": "authorize"}, UpstreamEvent.AUTHORIZE_ERROR),
    ({"error": {"message": "InvalidToken"}, "echo_req": {"authorize": "x"}}, UpstreamEvent.AUTHORIZE_ERROR),
    ({"tick": {"symbol": "R_100", "quote": 1, "epoch": 2}}, UpstreamEvent.TICK),
    ({"error": {"message": "AlreadySubscribed"}, "msg_type": "tick"}, UpstreamEvent.SUBSCRIPTION_ERROR),
    ({"error": {"message": "AlreadySubscribed"}, "echo_req": {"ticks": "R_100", "subscribe": 1},
      "msg_type": "tick"}, UpstreamEvent.SUBSCRIPTION_ERROR),
    ({"error": {"message": "MarketIsClosed"}, "echo_req": {"ticks": "R_100"}}, UpstreamEvent.SUBSCRIPTION_ERROR),
    ({"error": {"message": "InvalidForget"}, "msg_type": "forget"}, UpstreamEvent.SUBSCRIPTION_ERROR),
    ({"error": {"message": "RateLimit"}, "msg_type": "ping"}, UpstreamEvent.HEARTBEAT),
    ({"error": {"message": "InvalidSubscription"}, "echo_req": {"forget": "x"}}, UpstreamEvent.SUBSCRIPTION_ERROR),
    ({"buy": {"contract_id": 1}, "msg_type": "buy"}, UpstreamEvent.TRADE),
    ({"error": {"message": "InsufficientBalance"}}, UpstreamEvent.TRADE),
    ({"error": {"message": "ContractBuyValidationError"}, "msg_type": "buy"}, UpstreamEvent.TRADE),
    ({"ping": "pong", "msg_type": "ping"}, UpstreamEvent.HEARTBEAT),
    ({"forget": 1, "msg_type": "forget"}, UpstreamEvent.OTHER),
])
def test_classify(message, expected):
    assert protocol.classify(message) == expected


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", "42", b"\xff\xfe"])
def test_decode_rejects_non_object_payloads(raw):
    with pytest.raises(UpstreamProtocolError):
        protocol.decode(raw)


def test_tick_fields_are_passed_through_unchanged():
    message = {"tick": {"symbol": "R_100", "quote": 963.5, "epoch": 1690000000, "pip_size": 2}}

    assert protocol.tick_fields(message) == {"symbol": "R_100", "quote": 963.5, "epoch": 1690000000}


def test_tick_fields_reject_missing_symbol():
    with pytest.raises(UpstreamProtocolError):
        protocol.tick_fields({"tick": {"quote": 1}})


def test_subscription_id_prefers_subscription_block():
    assert protocol.subscription_id({"subscription": {"id": "a"}, "tick": {"id": "b"}}) == "a"
    assert protocol.subscription_id({"tick": {"id": "b"}}) == "b"
    assert protocol.subscription_id({"tick": {}}) is None


def test_error_message_falls_back_to_default():
    assert protocol.error_message({"error": {"message": "boom"}}) == "boom"
    assert protocol.error_message({"authorize": {"error": {"message": "bad"}}}) == "bad"
    assert protocol.error_message({}, "fallback") == "fallback"
