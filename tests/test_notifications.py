import logging

import pytest

from wattwatch.config import NotificationConfig
from wattwatch.notifications import (
    LogNotificationSink,
    MQTTNotificationSink,
    build_alert_notification,
    build_notification_sink,
)
from wattwatch.telemetry import BALANCE_DEPLETED, LOW_BALANCE


def test_low_balance_notification_content():
    notification = build_alert_notification(LOW_BALANCE, 12.0)

    assert notification.identifier == "LowBalanceNotification"
    assert notification.title == "Low Balance Alert"
    assert "below 15%" in notification.body


def test_depleted_notification_content():
    notification = build_alert_notification(BALANCE_DEPLETED, 0.0)

    assert notification.identifier == "PowerCutNotification"
    assert notification.title == "Power Cut Warning"


def test_unknown_alert_kind_is_rejected():
    with pytest.raises(ValueError):
        build_alert_notification("surge", 50.0)


def test_build_notification_sink_selects_transport():
    assert isinstance(build_notification_sink(NotificationConfig()), LogNotificationSink)
    assert isinstance(
        build_notification_sink(NotificationConfig(transport="mqtt")),
        MQTTNotificationSink,
    )
    assert isinstance(
        build_notification_sink(NotificationConfig(transport="pigeon")),
        LogNotificationSink,
    )


@pytest.mark.asyncio
async def test_log_sink_writes_warning(caplog):
    sink = LogNotificationSink()

    with caplog.at_level(logging.WARNING, logger="wattwatch.notifications"):
        await sink.start()
        await sink.send(build_alert_notification(LOW_BALANCE, 9.0))
        await sink.stop()

    assert "Low Balance Alert" in caplog.text
