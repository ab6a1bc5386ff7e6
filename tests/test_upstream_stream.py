"""
Tests for the single upstream socket wrapper
"""
import asyncio

import pytest

from deriv_proxy.data_layer import UpstreamStream
from deriv_proxy.settings import UpstreamConfig
from tests.fakes import FakeConnector, eventually

URL = "wss://upstream.test/websockets/v3?app_id=1234"


@pytest.mark.asyncio
async def test_heartbeat_pings_while_open_and_stops_on_close():
    connector = FakeConnector()
    stream = UpstreamStream(URL, UpstreamConfig(heartbeat_interval=0.02), connector)

    await stream.connect()
    upstream = connector.latest
    await eventually(lambda: len(upstream.sent_of("ping")) >= 2)

    assert upstream.sent_of("ping")[0] == {"ping": 1}

    heartbeat = stream.heartbeat_task
    await stream.close()
    await eventually(heartbeat.done)
    pings = len(upstream.sent_of("ping"))
    await asyncio.sleep(0.1)

    assert heartbeat.done()
    assert stream.heartbeat_task is None
    assert not stream.is_connected
    assert len(upstream.sent_of("ping")) == pings


@pytest.mark.asyncio
async def test_heartbeat_stops_when_upstream_drops():
    connector = FakeConnector()
    stream = UpstreamStream(URL, UpstreamConfig(heartbeat_interval=0.02), connector)
    await stream.connect()
    heartbeat = stream.heartbeat_task

    connector.latest.drop()
    received = [raw async for raw in stream.messages()]
    await eventually(heartbeat.done)

    assert received == []
    assert not stream.is_connected
    assert heartbeat.done()


@pytest.mark.asyncio
async def test_send_before_connect_is_refused():
    stream = UpstreamStream(URL, UpstreamConfig(), FakeConnector())

    with pytest.raises(ConnectionError):
        await stream.send({"ping": 1})


@pytest.mark.asyncio
async def test_connect_failure_leaves_stream_closed():
    connector = FakeConnector(fail_times=1)
    stream = UpstreamStream(URL, UpstreamConfig(), connector)

    with pytest.raises(OSError):
        await stream.connect()

    assert not stream.is_connected
    assert stream.heartbeat_task is None
    await stream.close()
