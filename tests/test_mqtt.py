"""Tests for the MQTT adapter and the MQTT notification sink."""

import asyncio
import json
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest

from wattwatch.adapters import MQTTClient, MQTTConnectionError
from wattwatch.adapters import mqtt as mqtt_module
from wattwatch.config import NotificationConfig
from wattwatch.notifications import (
    MQTTNotificationSink,
    Notification,
    NotificationError,
)


class FakeMqttClient:
    """Minimal fake paho-mqtt client for testing."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        events: dict,
        *,
        rc_connect: int = 0,
        publish_rc: int = mqtt.MQTT_ERR_SUCCESS,
    ):
        self._loop = loop
        self._events = events
        self._rc_connect = rc_connect
        self._publish_rc = publish_rc

        self.on_connect = None
        self.on_disconnect = None

    # paho interface -------------------------------------------------
    def enable_logger(self, logger):
        self._events.setdefault("logger_enabled", True)

    def username_pw_set(self, username, password=None):
        self._events["auth"] = (username, password)

    def connect_async(self, host, port, keepalive):
        self._events["connect_args"] = (host, port, keepalive)
        if self.on_connect:
            self._loop.call_soon(
                self.on_connect, self, None, None, self._rc_connect, None
            )

    def loop_start(self):
        self._events["loop_start"] = self._events.get("loop_start", 0) + 1

    def loop_stop(self):
        self._events["loop_stop"] = self._events.get("loop_stop", 0) + 1

    def disconnect(self):
        self._events["disconnect_called"] = True
        if self.on_disconnect:
            self._loop.call_soon(self.on_disconnect, self, None, None, 0, None)

    def publish(self, topic, payload, qos=0, retain=False):
        self._events.setdefault("published", []).append((topic, payload, qos, retain))
        return SimpleNamespace(rc=self._publish_rc)


@pytest.fixture
def fake_paho(monkeypatch):
    events: dict = {}
    options: dict = {}

    def factory(*args, **kwargs):
        events["client_args"] = (args, kwargs)
        return FakeMqttClient(asyncio.get_running_loop(), events, **options)

    monkeypatch.setattr(mqtt_module.mqtt, "Client", factory)
    return SimpleNamespace(events=events, options=options)


def make_config(**overrides) -> NotificationConfig:
    values = {"transport": "mqtt", "broker_host": "broker.local", "broker_port": 1884}
    values.update(overrides)
    return NotificationConfig(**values)


@pytest.mark.asyncio
async def test_connect_and_disconnect(fake_paho):
    client = MQTTClient(make_config(username="user", password="pw"), client_id="ww-1")

    await client.connect(timeout=1.0)

    assert client.is_connected() is True
    assert fake_paho.events["connect_args"] == ("broker.local", 1884, 60)
    assert fake_paho.events["auth"] == ("user", "pw")
    assert fake_paho.events["client_args"][1] == {"client_id": "ww-1"}

    await client.disconnect(timeout=1.0)

    assert client.is_connected() is False
    assert fake_paho.events["loop_stop"] == 1


@pytest.mark.asyncio
async def test_connect_rejected_raises(fake_paho):
    fake_paho.options["rc_connect"] = 5
    client = MQTTClient(make_config(), client_id="ww-1")

    with pytest.raises(MQTTConnectionError):
        await client.connect(timeout=1.0)

    assert fake_paho.events["loop_stop"] == 1


def test_publish_requires_connection():
    client = MQTTClient(make_config(), client_id="ww-1")

    with pytest.raises(RuntimeError):
        client.publish("topic", b"payload")


@pytest.mark.asyncio
async def test_notification_sink_publishes_json(fake_paho):
    config = make_config(topic="home/alerts")
    sink = MQTTNotificationSink(config, client=MQTTClient(config, client_id="ww-1"))

    await sink.start()
    await sink.send(Notification("LowBalanceNotification", "Low Balance Alert", "Recharge"))
    await sink.stop()

    topic, payload, qos, retain = fake_paho.events["published"][0]
    assert topic == "home/alerts"
    assert qos == 1
    assert retain is False
    body = json.loads(payload)
    assert body["identifier"] == "LowBalanceNotification"
    assert body["title"] == "Low Balance Alert"


@pytest.mark.asyncio
async def test_notification_sink_wraps_publish_failure(fake_paho):
    fake_paho.options["publish_rc"] = mqtt.MQTT_ERR_NO_CONN
    config = make_config()
    sink = MQTTNotificationSink(config, client=MQTTClient(config, client_id="ww-1"))

    await sink.start()
    try:
        with pytest.raises(NotificationError):
            await sink.send(Notification("PowerCutNotification", "Power Cut Warning", "Cut"))
    finally:
        await sink.stop()
