"""
Tests for the HTTP session endpoints and the proxied WebSocket route
"""
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from deriv_proxy.api import create_app
from tests.fakes import FakeConnector, authorize_reply, tick_reply


def deriv_responder(message):
    if "authorize" in message:
        return [authorize_reply("CR1", "USD", 100)]
    if "ticks" in message:
        return [tick_reply(message["ticks"], 963.5, 1690000000)]
    if "buy" in message:
        return [{
            "buy": {"contract_id": 42, "buy_price": message["price"]},
            "req_id": message["req_id"],
            "msg_type": "buy",
        }]
    return None


@pytest.fixture
def connector():
    return FakeConnector(deriv_responder)


@pytest.fixture
def client(settings, proxy_config, connector):
    app = create_app(settings, proxy_config, connector)
    with TestClient(app) as test_client:
        yield test_client


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


def login(client, token="abc"):
    response = client.post("/store-token", json={"token": token})
    assert response.status_code == 200
    return response.json()["sessionId"]


def test_store_token_sets_session_cookie(client):
    response = client.post("/store-token", json={"token": "abc"})

    body = response.json()
    assert response.status_code == 200
    assert body["ok"] is True
    assert response.cookies["SESSION_ID"] == body["sessionId"]
    assert client.app.state.proxy.session_store.lookup(body["sessionId"]) == "abc"


def test_store_token_issues_unique_sessions(client):
    session_ids = {login(client, f"token-{i}") for i in range(20)}

    assert len(session_ids) == 20


@pytest.mark.parametrize("body", [{}, {"token": ""}, None])
def test_store_token_without_token_is_rejected(client, body):
    response = client.post("/store-token", json=body)

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "token missing"}
    assert len(client.app.state.proxy.session_store) == 0


def test_me_without_session_is_unauthorized(client):
    response = client.get("/me")

    assert response.status_code == 401
    assert response.json() == {"authorized": False}


def test_me_with_session_before_upstream_authorization(client):
    login(client)

    response = client.get("/me")

    assert response.status_code == 200
    assert response.json() == {"authorized": True, "account": None}


def test_logout_ends_session(client):
    session_id = login(client)

    response = client.post("/logout")

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert client.app.state.proxy.session_store.lookup(session_id) is None
    assert client.get("/me").status_code == 401


def test_logout_without_session_is_ok(client):
    response = client.post("/logout")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_buy_requires_session(client):
    response = client.post("/api/buy", json={"symbol": "R_100", "stake": 10})

    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "not logged"}


@pytest.mark.parametrize("body", [{}, {"symbol": "R_100"}, {"stake": 10}, {"symbol": "", "stake": 10}])
def test_buy_requires_symbol_and_stake(client, body):
    login(client)

    response = client.post("/api/buy", json=body)

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "missing params"}


def test_buy_without_live_connection_is_unavailable(client, connector):
    login(client)

    response = client.post("/api/buy", json={"symbol": "R_100", "stake": 10})

    assert response.status_code == 503
    assert response.json() == {"ok": False, "error": "deriv connection not ready"}
    assert connector.sockets == []


def test_health_reports_counts(client):
    login(client)

    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "connections": 0, "sessions": 1}


def test_websocket_session_end_to_end(client, connector):
    login(client)
    proxy = client.app.state.proxy

    with client.websocket_connect("/client-proxy") as ws:
        assert ws.receive_json() == {
            "type": "authorized",
            "account": {"loginid": "CR1", "currency": "USD", "balance": 100},
        }
        assert ws.receive_json() == {"type": "balance", "balance": 100}
        assert connector.urls == ["wss://upstream.test/websockets/v3?app_id=1234"]

        ws.send_json({"type": "subscribe", "symbol": "R_100"})
        assert ws.receive_json() == {"type": "subscribed", "symbol": "R_100"}
        assert ws.receive_json() == {
            "type": "tick", "symbol": "R_100", "quote": 963.5, "epoch": 1690000000,
        }

        me = client.get("/me").json()
        assert me["authorized"] is True
        assert me["account"]["loginid"] == "CR1"
        assert client.get("/api/health").json()["connections"] == 1

        response = client.post("/api/buy", json={"symbol": "R_100", "stake": 10})
        assert response.status_code == 200
        assert response.json()["ok"] is True
        assert response.json()["result"]["buy"] == {"contract_id": 42, "buy_price": 10.0}
        assert ws.receive_json()["type"] == "buy_result"

    wait_until(lambda: len(proxy.registry) == 0)
    assert connector.latest.closed


def test_anonymous_websocket_gets_public_ticks(client, connector):
    with client.websocket_connect("/client-proxy") as ws:
        ws.send_json({"type": "subscribe", "symbol": "R_50"})
        assert ws.receive_json() == {"type": "subscribed", "symbol": "R_50"}
        assert ws.receive_json()["symbol"] == "R_50"

    assert connector.latest.sent_of("authorize") == []


def test_binary_client_frame_is_ignored(client, connector):
    with client.websocket_connect("/client-proxy") as ws:
        ws.send_bytes(b"\x00\x01")
        ws.send_bytes(b'{"type": "launch_rockets"}')
        ws.send_json({"type": "subscribe", "symbol": "R_100"})
        assert ws.receive_json() == {"type": "subscribed", "symbol": "R_100"}

    assert connector.latest.sent_of("ticks") == [{"ticks": "R_100", "subscribe": 1}]


def test_websocket_outside_proxy_path_is_rejected(client, connector):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/somewhere-else") as ws:
            ws.receive_json()

    assert connector.urls == []


def test_each_client_socket_gets_its_own_upstream(client, connector):
    login(client)
    proxy = client.app.state.proxy

    for _ in range(5):
        with client.websocket_connect("/client-proxy") as ws:
            ws.receive_json()

    wait_until(lambda: len(proxy.registry) == 0)
    assert len(connector.sockets) == 5
    assert all(socket.closed for socket in connector.sockets)
