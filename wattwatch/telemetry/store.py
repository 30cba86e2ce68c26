"""Telemetry state store: applies feed records and notifies observers."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple

from .. import constants
from ..core import FeedRecord, TelemetrySample, TelemetrySnapshot, utcnow
from .window import SampleWindow

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryUpdate:
    """What observers receive after each applied record."""

    sample: Optional[TelemetrySample]
    snapshot: TelemetrySnapshot
    window: Tuple[TelemetrySample, ...]
    total_used: float
    observed_at: datetime


TelemetryObserver = Callable[[TelemetryUpdate], Awaitable[None] | None]


def clamp_balance(value: float) -> float:
    return min(max(value, 0.0), 100.0)


class TelemetryStore:
    """Holds the sample window and the latest derived snapshot.

    The store has a single writer (the poller) and any number of readers.
    All mutation and observer notification happens on the event loop thread.
    """

    def __init__(
        self,
        *,
        capacity: int = 50,
        sample_ceiling: float = 1.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._clock = clock or utcnow
        self._window = SampleWindow(capacity)
        self._sample_ceiling = sample_ceiling
        self._snapshot = TelemetrySnapshot()
        self._total_used = 0.0
        self._observers: list[TelemetryObserver] = []

    @property
    def window(self) -> SampleWindow:
        return self._window

    @property
    def snapshot(self) -> TelemetrySnapshot:
        return self._snapshot

    @property
    def total_used(self) -> float:
        return self._total_used

    def subscribe(self, observer: TelemetryObserver) -> Callable[[], None]:
        """Register an observer and return a callable that removes it."""

        self._observers.append(observer)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(observer)

        return _unsubscribe

    def ingest(self, record: FeedRecord) -> TelemetryUpdate:
        """Apply one feed record.

        Each field is handled independently: a field that does not parse is
        skipped for this record without affecting the others.
        """

        observed_at = self._clock()
        sample = self._ingest_sample(record, observed_at)

        balance = record.number(constants.BALANCE_FIELD)
        if balance is None:
            _log_unparsed(record, constants.BALANCE_FIELD)
        else:
            self._snapshot = dataclasses.replace(
                self._snapshot, remaining_balance_percent=clamp_balance(balance)
            )

        temperature = record.number(constants.TEMPERATURE_FIELD)
        if temperature is None:
            _log_unparsed(record, constants.TEMPERATURE_FIELD)
        else:
            self._snapshot = dataclasses.replace(
                self._snapshot, battery_temperature=temperature
            )

        return TelemetryUpdate(
            sample=sample,
            snapshot=self._snapshot,
            window=self._window.snapshot(),
            total_used=self._total_used,
            observed_at=observed_at,
        )

    async def publish(
        self,
        update: TelemetryUpdate,
        *,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Notify observers in subscription order.

        When ``is_current`` is given it is checked before each observer, and
        delivery stops as soon as it returns False.
        """

        for observer in list(self._observers):
            if is_current is not None and not is_current():
                LOGGER.debug("Dropping telemetry update for a stopped schedule")
                return
            try:
                result = observer(update)
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Telemetry observer raised an exception")

    async def apply(
        self,
        record: FeedRecord,
        *,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> TelemetryUpdate:
        update = self.ingest(record)
        await self.publish(update, is_current=is_current)
        return update

    def _ingest_sample(
        self, record: FeedRecord, observed_at: datetime
    ) -> Optional[TelemetrySample]:
        usage = record.number(constants.USAGE_FIELD)
        predicted = record.number(constants.PREDICTED_FIELD)
        if usage is None or predicted is None:
            _log_unparsed(record, constants.USAGE_FIELD, constants.PREDICTED_FIELD)
            return None

        # Outlier guard applies to the chart series only.
        if not (usage < self._sample_ceiling and predicted < self._sample_ceiling):
            LOGGER.debug(
                "Rejected sample usage=%s predicted=%s (ceiling %s)",
                usage,
                predicted,
                self._sample_ceiling,
            )
            return None

        sample = TelemetrySample(
            timestamp=observed_at, usage_value=usage, predicted_value=predicted
        )
        self._window.append(sample)
        self._total_used += usage
        return sample


def _log_unparsed(record: FeedRecord, *names: str) -> None:
    if LOGGER.isEnabledFor(logging.DEBUG):
        LOGGER.debug(
            "Skipping unparsable field(s) %s",
            ", ".join(f"{name}={record.value(name)!r}" for name in names),
        )
