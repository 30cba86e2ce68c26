"""Tests for the service supervisor wiring."""

import asyncio
import random
from pathlib import Path
from typing import Any, Optional

import pytest

from wattwatch.app import ServiceState, WattwatchApp
from wattwatch.config import load_config
from wattwatch.core import FeedRecord
from wattwatch.notifications import Notification


class FakeThingSpeak:
    def __init__(self, *balances: str) -> None:
        self._balances = list(balances)
        self.writes: list[tuple[int, Any]] = []
        self.fetches = 0
        self.closed = False

    async def fetch_latest_feed(self) -> Optional[FeedRecord]:
        self.fetches += 1
        balance = self._balances.pop(0) if len(self._balances) > 1 else self._balances[0]
        return FeedRecord(fields={"field1": "0.3", "field3": "0.4", "field2": balance})

    async def write_field(self, field_number: int, value: Any) -> str:
        self.writes.append((field_number, value))
        return str(len(self.writes))

    async def aclose(self) -> None:
        self.closed = True


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[Notification] = []
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def config(tmp_path: Path):
    config_path = tmp_path / "wattwatch.cfg"
    config_path.write_text(
        "[polling]\ninterval_seconds = 0.1\n"
        "[commands]\nattempts = 3\nspacing_seconds = 0\n",
        encoding="utf-8",
    )
    return load_config(config_path)


async def wait_until(predicate, timeout: float = 3.0) -> None:
    async def _wait() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_wait(), timeout=timeout)


@pytest.mark.asyncio
async def test_polling_feeds_alerts_to_sink(config):
    client = FakeThingSpeak("40", "12", "11", "0", "50")
    sink = RecordingSink()
    app = WattwatchApp(config, client=client, notification_sink=sink)

    await app.start_services()
    try:
        assert app.state is ServiceState.ACTIVE
        await wait_until(lambda: client.fetches >= 5)
    finally:
        await app.stop_services()

    assert [notification.identifier for notification in sink.sent] == [
        "LowBalanceNotification",
        "PowerCutNotification",
    ]
    assert app.state is ServiceState.STOPPED
    assert sink.started and sink.stopped
    assert client.closed is True
    snapshot = await app.health.snapshot()
    components = {item["name"]: item for item in snapshot["components"]}
    assert components["telemetry"]["detail"] == "stopped"


@pytest.mark.asyncio
async def test_chat_command_is_dispatched_through_mailbox(config):
    client = FakeThingSpeak("80")
    app = WattwatchApp(
        config, client=client, notification_sink=RecordingSink(), rng=random.Random(1)
    )

    reply = app.chat("please turn on washing machine")
    await app.dispatcher.wait_all()

    assert reply is not None
    assert reply.text == "I've turned on the washing machine for you."
    assert app.mailbox.has_pending is False
    assert app.devices.get(2).is_on is True
    assert client.writes == [(8, 1), (8, 1), (8, 1)]


@pytest.mark.asyncio
async def test_set_device_and_status(config):
    client = FakeThingSpeak("80")
    app = WattwatchApp(config, client=client, notification_sink=RecordingSink())

    batch = app.set_device(1, True)
    await batch.wait()
    await app.poller.poll_once()

    status = app.status()
    assert status["remainingBalancePercent"] == 80.0
    assert status["samples"] == 1
    assert status["latestSample"]["usage"] == 0.3
    light = next(device for device in status["devices"] if device["id"] == 1)
    assert light["isOn"] is True
    assert client.writes == [(7, 1)] * 3


@pytest.mark.asyncio
async def test_run_stops_on_shutdown_request(config):
    client = FakeThingSpeak("90")
    app = WattwatchApp(config, client=client, notification_sink=RecordingSink())

    task = asyncio.create_task(app.run())
    await wait_until(lambda: client.fetches >= 1)
    app.request_shutdown()
    await asyncio.wait_for(task, timeout=2.0)

    assert app.state is ServiceState.STOPPED
    assert client.closed is True
