"""Alert notification delivery."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from . import constants
from .adapters import MQTTClient, MQTTConnectionError
from .config import NotificationConfig
from .telemetry import BALANCE_DEPLETED, LOW_BALANCE

LOGGER = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a notification cannot be delivered."""


@dataclass(frozen=True)
class Notification:
    identifier: str
    title: str
    body: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, str]:
        return {
            "identifier": self.identifier,
            "title": self.title,
            "body": self.body,
            "createdAt": self.created_at.isoformat(timespec="seconds"),
        }


def build_alert_notification(kind: str, balance: float) -> Notification:
    if kind == LOW_BALANCE:
        return Notification(
            identifier="LowBalanceNotification",
            title="Low Balance Alert",
            body="Your remaining balance is below 15%. Please recharge soon.",
        )
    if kind == BALANCE_DEPLETED:
        return Notification(
            identifier="PowerCutNotification",
            title="Power Cut Warning",
            body="Your usage has exceeded your balance. Initiating power cut demo.",
        )
    raise ValueError(f"Unknown alert kind: {kind!r}")


class NotificationSink(Protocol):
    async def start(self) -> None: ...

    async def send(self, notification: Notification) -> None: ...

    async def stop(self) -> None: ...


class LogNotificationSink:
    """Writes notifications to the service log."""

    async def start(self) -> None:
        return None

    async def send(self, notification: Notification) -> None:
        LOGGER.warning("%s: %s", notification.title, notification.body)

    async def stop(self) -> None:
        return None


class MQTTNotificationSink:
    """Publishes notifications as JSON to an MQTT topic."""

    def __init__(
        self, config: NotificationConfig, *, client: Optional[MQTTClient] = None
    ) -> None:
        self._config = config
        self._client = client or MQTTClient(
            config, client_id=f"{constants.APP_NAME}-{os.getpid()}"
        )

    async def start(self) -> None:
        await self._client.connect()

    async def send(self, notification: Notification) -> None:
        payload = json.dumps(notification.as_dict()).encode("utf-8")
        try:
            self._client.publish(self._config.topic, payload, qos=1)
        except (MQTTConnectionError, RuntimeError) as exc:
            raise NotificationError(
                f"Failed to publish notification {notification.identifier}: {exc}"
            ) from exc
        LOGGER.info("Published %s to %s", notification.identifier, self._config.topic)

    async def stop(self) -> None:
        await self._client.disconnect()


def build_notification_sink(config: NotificationConfig) -> NotificationSink:
    if config.transport == "mqtt":
        return MQTTNotificationSink(config)
    if config.transport != "log":
        LOGGER.warning(
            "Unknown notification transport %r; falling back to log", config.transport
        )
    return LogNotificationSink()
