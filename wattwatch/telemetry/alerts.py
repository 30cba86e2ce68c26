"""Edge-triggered balance alerts derived from published telemetry."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from .store import TelemetryUpdate

LOGGER = logging.getLogger(__name__)

AlertCallback = Callable[[str, float], Awaitable[None]]

LOW_BALANCE = "low_balance"
BALANCE_DEPLETED = "balance_depleted"


class ThresholdWatcher:
    """Fires once when a value drops below a threshold.

    The watcher re-arms only when the value recovers to the threshold or
    above, so a run of low readings produces a single signal.
    """

    def __init__(self, threshold: float, *, inclusive: bool = False) -> None:
        self.threshold = threshold
        self.inclusive = inclusive
        self._latched = False

    @property
    def latched(self) -> bool:
        return self._latched

    def observe(self, value: float) -> bool:
        """Return True when this value crosses into the alert region."""

        below = value <= self.threshold if self.inclusive else value < self.threshold
        if below and not self._latched:
            self._latched = True
            return True
        if not below and self._latched:
            self._latched = False
        return False

    def reset(self) -> None:
        self._latched = False


class BalanceAlertMonitor:
    """Telemetry observer raising low-balance and depleted-balance alerts."""

    def __init__(
        self,
        *,
        low_balance_percent: float = 15.0,
        depleted_balance_percent: float = 0.0,
        on_alert: Optional[AlertCallback] = None,
    ) -> None:
        self._low = ThresholdWatcher(low_balance_percent)
        self._depleted = ThresholdWatcher(depleted_balance_percent, inclusive=True)
        self._on_alert = on_alert

    async def observe_balance(self, balance: float) -> list[str]:
        fired: list[str] = []
        if self._low.observe(balance):
            fired.append(LOW_BALANCE)
        if self._depleted.observe(balance):
            fired.append(BALANCE_DEPLETED)

        for kind in fired:
            LOGGER.info("Balance alert %s at %.1f%%", kind, balance)
            if self._on_alert is not None:
                await self._on_alert(kind, balance)
        return fired

    async def __call__(self, update: TelemetryUpdate) -> None:
        await self.observe_balance(update.snapshot.remaining_balance_percent)
