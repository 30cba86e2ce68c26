"""Tests for the ThingSpeak adapter."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web

from wattwatch.adapters import ThingSpeakClient, ThingSpeakError
from wattwatch.config import ConfigurationError, ThingSpeakConfig
from wattwatch.core import FeedDecodeError


@pytest_asyncio.fixture
async def thingspeak_server(unused_tcp_port_factory):
    requests: list[tuple[str, dict[str, str]]] = []
    behaviour = {"feeds": "ok", "update": "17"}

    async def feeds_handler(request: web.Request):
        requests.append((request.path, dict(request.query)))
        mode = behaviour["feeds"]
        if mode == "error":
            return web.Response(status=500, text="Internal error")
        if mode == "garbage":
            return web.Response(text="<html>not json</html>", content_type="text/html")
        if mode == "slow":
            await asyncio.sleep(1)
        return web.json_response(
            {
                "channel": {"id": int(request.match_info["channel"])},
                "feeds": [
                    {
                        "created_at": "2025-03-01T10:00:00Z",
                        "entry_id": 9,
                        "field1": "0.42",
                        "field2": "63.5",
                        "field3": "0.40",
                        "field6": "26.1",
                        "field7": None,
                    }
                ],
            }
        )

    async def update_handler(request: web.Request):
        requests.append((request.path, dict(request.query)))
        if behaviour["update"] == "error":
            return web.Response(status=400, text="bad key")
        return web.Response(text=behaviour["update"])

    app = web.Application()
    app.router.add_get("/channels/{channel}/feeds.json", feeds_handler)
    app.router.add_get("/update", update_handler)

    runner = web.AppRunner(app)
    await runner.setup()

    port = unused_tcp_port_factory()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()

    class _Server:
        base_url = f"http://127.0.0.1:{port}"

        def __init__(self) -> None:
            self.requests = requests
            self.behaviour = behaviour

    try:
        yield _Server()
    finally:
        await runner.cleanup()


def make_config(server, **overrides) -> ThingSpeakConfig:
    values = {
        "base_url": server.base_url,
        "channel_id": "2834155",
        "read_api_key": "READKEY",
        "write_api_key": "WRITEKEY",
        "request_timeout_seconds": 0.5,
    }
    values.update(overrides)
    return ThingSpeakConfig(**values)


@pytest.mark.asyncio
async def test_fetch_latest_feed_requests_one_result(thingspeak_server):
    async with ThingSpeakClient(make_config(thingspeak_server)) as client:
        record = await client.fetch_latest_feed()

    assert record is not None
    assert record.number("field1") == 0.42
    assert record.number("field2") == 63.5
    assert record.value("field7") is None
    path, query = thingspeak_server.requests[0]
    assert path == "/channels/2834155/feeds.json"
    assert query == {"api_key": "READKEY", "results": "1"}


@pytest.mark.asyncio
async def test_fetch_without_read_key_omits_parameter(thingspeak_server):
    async with ThingSpeakClient(make_config(thingspeak_server, read_api_key=None)) as client:
        await client.fetch_latest_feed()

    _, query = thingspeak_server.requests[0]
    assert query == {"results": "1"}


@pytest.mark.asyncio
async def test_fetch_raises_on_http_error(thingspeak_server):
    thingspeak_server.behaviour["feeds"] = "error"

    async with ThingSpeakClient(make_config(thingspeak_server)) as client:
        with pytest.raises(ThingSpeakError) as excinfo:
            await client.fetch_latest_feed()

    assert excinfo.value.status == 500


@pytest.mark.asyncio
async def test_fetch_raises_decode_error_on_malformed_body(thingspeak_server):
    thingspeak_server.behaviour["feeds"] = "garbage"

    async with ThingSpeakClient(make_config(thingspeak_server)) as client:
        with pytest.raises(FeedDecodeError):
            await client.fetch_latest_feed()


@pytest.mark.asyncio
async def test_fetch_times_out(thingspeak_server):
    thingspeak_server.behaviour["feeds"] = "slow"

    async with ThingSpeakClient(
        make_config(thingspeak_server, request_timeout_seconds=0.1)
    ) as client:
        with pytest.raises(ThingSpeakError, match="timed out"):
            await client.fetch_latest_feed()


@pytest.mark.asyncio
async def test_fetch_raises_on_connection_failure(unused_tcp_port):
    config = ThingSpeakConfig(
        base_url=f"http://127.0.0.1:{unused_tcp_port}", channel_id="1"
    )

    async with ThingSpeakClient(config) as client:
        with pytest.raises(ThingSpeakError):
            await client.fetch_latest_feed()


@pytest.mark.asyncio
async def test_write_field_sends_single_field(thingspeak_server):
    async with ThingSpeakClient(make_config(thingspeak_server)) as client:
        body = await client.write_field(7, 1)

    assert body == "17"
    path, query = thingspeak_server.requests[0]
    assert path == "/update"
    assert query == {"api_key": "WRITEKEY", "field7": "1"}


@pytest.mark.asyncio
async def test_write_field_raises_on_http_error(thingspeak_server):
    thingspeak_server.behaviour["update"] = "error"

    async with ThingSpeakClient(make_config(thingspeak_server)) as client:
        with pytest.raises(ThingSpeakError) as excinfo:
            await client.write_field(8, 0)

    assert excinfo.value.status == 400


@pytest.mark.asyncio
async def test_missing_credentials_raise_configuration_error(thingspeak_server):
    config = make_config(thingspeak_server, channel_id="", write_api_key=None)

    async with ThingSpeakClient(config) as client:
        with pytest.raises(ConfigurationError):
            await client.fetch_latest_feed()
        with pytest.raises(ConfigurationError):
            await client.write_field(7, 1)

    assert thingspeak_server.requests == []
