"""Periodic ThingSpeak telemetry polling.

Design principles:
- One fetch per tick, fired on a fixed cadence regardless of whether the
  previous request has completed
- Failed ticks are logged and skipped; the next tick runs independently
- Stopping cancels the schedule only; requests already in flight complete,
  but their results are dropped so nothing is published after ``stop()``
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional, Set

import aiohttp

from ..adapters.thingspeak import ThingSpeakError
from ..config import ConfigurationError
from ..core import FeedDecodeError, TelemetrySource
from .store import TelemetryStore

LOGGER = logging.getLogger(__name__)

StatusListener = Callable[[bool, Optional[str]], Awaitable[None]]

FETCH_ERRORS = (
    ThingSpeakError,
    FeedDecodeError,
    ConfigurationError,
    aiohttp.ClientError,
    asyncio.TimeoutError,
)


class PollingHandle:
    """Handle for one active polling schedule.

    Use ``await handle.stop()`` or ``async with poller.start():`` to guarantee
    the schedule is released on every exit path.
    """

    def __init__(self, poller: "TelemetryPoller") -> None:
        self._poller = poller
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._inflight: Set[asyncio.Task[None]] = set()

    @property
    def active(self) -> bool:
        return not self._stop_event.is_set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def stop(self) -> None:
        """Cancel the schedule. Safe to call more than once."""

        if self._stop_event.is_set():
            return
        self._stop_event.set()

        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        LOGGER.info("Telemetry polling stopped")

    async def wait_inflight(self) -> None:
        """Wait for requests issued before ``stop()`` to settle."""

        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def __aenter__(self) -> "PollingHandle":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def _launch(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        poller = self._poller

        delay = max(poller.initial_delay_seconds, 0.0)
        if delay and await self._wait_stopped(delay):
            return

        while not self._stop_event.is_set():
            tick = asyncio.create_task(poller._tick(self))
            self._inflight.add(tick)
            tick.add_done_callback(self._inflight.discard)

            if await self._wait_stopped(max(poller.interval_seconds, 0.1)):
                break

    async def _wait_stopped(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class TelemetryPoller:
    """Fetches the latest channel record on a fixed cadence and feeds the store."""

    def __init__(
        self,
        source: TelemetrySource,
        store: TelemetryStore,
        *,
        interval_seconds: float = 2.0,
        initial_delay_seconds: float = 0.0,
        status_listener: Optional[StatusListener] = None,
    ) -> None:
        self._source = source
        self._store = store
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._status_listener = status_listener
        self._handle: Optional[PollingHandle] = None

    @property
    def store(self) -> TelemetryStore:
        return self._store

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.active

    def start(self) -> PollingHandle:
        """Begin polling and return the handle that owns the schedule."""

        if self._handle is not None and self._handle.active:
            return self._handle

        handle = PollingHandle(self)
        handle._launch()
        self._handle = handle
        LOGGER.info("Telemetry polling started (every %.1fs)", self.interval_seconds)
        return handle

    async def stop(self) -> None:
        if self._handle is not None:
            await self._handle.stop()

    async def poll_once(self) -> bool:
        """Run a single fetch-and-apply cycle outside the schedule.

        Returns True when a record was applied.
        """

        try:
            record = await self._source.fetch_latest_feed()
        except asyncio.CancelledError:
            raise
        except FETCH_ERRORS as exc:
            LOGGER.warning("Telemetry fetch failed: %s", exc)
            await self._report(False, str(exc))
            return False
        except Exception as exc:
            LOGGER.exception("Unexpected error fetching telemetry")
            await self._report(False, str(exc))
            return False

        if record is None:
            LOGGER.debug("Channel feed is empty")
            await self._report(True, "channel empty")
            return False

        await self._store.apply(record)
        await self._report(True, None)
        return True

    async def _tick(self, handle: PollingHandle) -> None:
        try:
            record = await self._source.fetch_latest_feed()
        except asyncio.CancelledError:
            raise
        except FETCH_ERRORS as exc:
            LOGGER.warning("Telemetry tick skipped: %s", exc)
            if handle.active:
                await self._report(False, str(exc))
            return
        except Exception as exc:
            LOGGER.exception("Unexpected error in telemetry tick")
            if handle.active:
                await self._report(False, str(exc))
            return

        if not handle.active:
            LOGGER.debug("Discarding telemetry response received after stop")
            return

        if record is None:
            LOGGER.debug("Channel feed is empty")
            await self._report(True, "channel empty")
            return

        await self._store.apply(record, is_current=lambda: handle.active)
        if handle.active:
            await self._report(True, None)

    async def _report(self, healthy: bool, detail: Optional[str]) -> None:
        if self._status_listener is None:
            return
        try:
            await self._status_listener(healthy, detail)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Telemetry status listener raised an exception")
