"""Main application entry-point for wattwatch."""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Dict, Optional

from .adapters import MQTTConnectionError, ThingSpeakClient
from .assistant import AssistantReply, ChatAssistant
from .commands import DeviceCommandDispatcher, DeviceController, DispatchBatch
from .config import WattwatchConfig, load_config
from .core import CommandMailbox
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .notifications import (
    LogNotificationSink,
    NotificationError,
    NotificationSink,
    build_alert_notification,
    build_notification_sink,
)
from .telemetry import (
    BalanceAlertMonitor,
    PollingHandle,
    TelemetryPoller,
    TelemetryStore,
)

LOGGER = logging.getLogger(__name__)


class ServiceState(str, Enum):
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"
    STOPPED = "stopped"


class WattwatchApp:
    """Coordinates service startup and shutdown.

    Wires the ThingSpeak client into the telemetry poller and the device
    command dispatcher, routes balance alerts to the notification sink, and
    exposes the chat assistant and device controls to the CLI.
    """

    def __init__(
        self,
        config: Optional[WattwatchConfig] = None,
        *,
        client: Optional[ThingSpeakClient] = None,
        notification_sink: Optional[NotificationSink] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config or load_config()
        self._client = client or ThingSpeakClient(self._config.thingspeak)
        self._sink: NotificationSink = notification_sink or build_notification_sink(
            self._config.notifications
        )
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._polling: Optional[PollingHandle] = None
        self._state = ServiceState.STOPPED

        polling = self._config.polling
        self.store = TelemetryStore(
            capacity=polling.window_capacity,
            sample_ceiling=polling.sample_ceiling,
        )
        self.poller = TelemetryPoller(
            self._client,
            self.store,
            interval_seconds=polling.interval_seconds,
            initial_delay_seconds=polling.initial_delay_seconds,
            status_listener=self._on_poll_status,
        )

        commands = self._config.commands
        self.dispatcher = DeviceCommandDispatcher(
            self._client,
            device_fields=commands.device_fields,
            attempts=commands.attempts,
            spacing_seconds=commands.spacing_seconds,
        )

        self.mailbox = CommandMailbox()
        devices = self._config.devices
        self.devices = DeviceController(
            self.dispatcher,
            names=devices.names,
            mailbox=self.mailbox,
            usage_min=devices.usage_min,
            usage_max=devices.usage_max,
            rng=rng,
        )
        self.assistant = ChatAssistant(self.mailbox, rng=rng)

        alerts = self._config.alerts
        self.alerts = BalanceAlertMonitor(
            low_balance_percent=alerts.low_balance_percent,
            depleted_balance_percent=alerts.depleted_balance_percent,
            on_alert=self._on_alert,
        )
        self.store.subscribe(self.alerts)

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def health(self) -> HealthReporter:
        return self._health

    async def run(self) -> None:
        """Run until ``request_shutdown()`` is called or the task is cancelled."""

        self._shutdown_event = asyncio.Event()

        LOGGER.info("wattwatch starting with config: %s", self._config.path)
        await self.start_services()

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("wattwatch received shutdown signal")
            raise
        finally:
            await self.stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[WattwatchConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("wattwatch received shutdown signal")

    async def start_services(self) -> None:
        self._state = ServiceState.STARTING
        await self._health.update("telemetry", False, "starting")
        await self._health.update("commands", True, None)

        try:
            await self._sink.start()
        except MQTTConnectionError as exc:
            LOGGER.error("Notification transport unavailable, using log: %s", exc)
            self._sink = LogNotificationSink()
            await self._health.update("notifications", False, str(exc))
        else:
            await self._health.update("notifications", True, None)

        self._polling = self.poller.start()
        await self._start_health_server()
        self._state = ServiceState.ACTIVE

    async def stop_services(self) -> None:
        if self._state in (ServiceState.STOPPING, ServiceState.STOPPED):
            return
        self._state = ServiceState.STOPPING

        if self._polling is not None:
            await self._polling.stop()
            self._polling = None

        self.dispatcher.cancel_all()
        await self.dispatcher.wait_all()
        await self._health.update("telemetry", False, "stopped")

        await self._sink.stop()

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        await self.aclose()
        self._state = ServiceState.STOPPED

    async def aclose(self) -> None:
        """Release the HTTP session held by the ThingSpeak client."""

        await self._client.aclose()

    # ------------------------------------------------------------------
    # Operations used by the CLI
    # ------------------------------------------------------------------
    def set_device(self, device_id: int, turn_on: bool) -> Optional[DispatchBatch]:
        return self.devices.set_state(device_id, turn_on)

    def chat(self, message: str) -> Optional[AssistantReply]:
        reply = self.assistant.respond(message)
        if reply is None:
            return None
        LOGGER.info("Assistant: %s", reply.text)
        self.devices.drain_mailbox()
        return reply

    def status(self) -> Dict[str, object]:
        snapshot = self.store.snapshot
        latest = self.store.window.latest()
        return {
            "state": self._state.value,
            "remainingBalancePercent": snapshot.remaining_balance_percent,
            "batteryTemperature": snapshot.battery_temperature,
            "totalUsed": self.store.total_used,
            "samples": len(self.store.window),
            "latestSample": None
            if latest is None
            else {
                "timestamp": latest.timestamp.isoformat(timespec="seconds"),
                "usage": latest.usage_value,
                "predicted": latest.predicted_value,
            },
            "devices": [
                {
                    "id": device.id,
                    "name": device.name,
                    "isOn": device.is_on,
                    "currentUsage": device.current_usage,
                }
                for device in self.devices.devices
            ],
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled or health.port <= 0:
            return

        server = HealthServer(
            self._health, health.host, health.port, status_provider=self.status
        )
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            await self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            await self._health.update("health-endpoint", True, None)

    async def _on_poll_status(self, healthy: bool, detail: Optional[str]) -> None:
        await self._health.update("telemetry", healthy, detail)

    async def _on_alert(self, kind: str, balance: float) -> None:
        notification = build_alert_notification(kind, balance)
        try:
            await self._sink.send(notification)
        except NotificationError as exc:
            LOGGER.warning("Notification delivery failed: %s", exc)
            await self._health.update("notifications", False, str(exc))
