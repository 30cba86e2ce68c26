"""Telemetry polling, state and alerting."""

from .alerts import (
    BALANCE_DEPLETED,
    LOW_BALANCE,
    BalanceAlertMonitor,
    ThresholdWatcher,
)
from .poller import PollingHandle, TelemetryPoller
from .store import TelemetryObserver, TelemetryStore, TelemetryUpdate, clamp_balance
from .window import SampleWindow

__all__ = [
    "BALANCE_DEPLETED",
    "LOW_BALANCE",
    "BalanceAlertMonitor",
    "PollingHandle",
    "SampleWindow",
    "TelemetryObserver",
    "TelemetryPoller",
    "TelemetryStore",
    "TelemetryUpdate",
    "ThresholdWatcher",
    "clamp_balance",
]
