"""Device command dispatch for wattwatch.

Turning a device on or off is propagated to ThingSpeak by writing the
device's channel field repeatedly on a fixed schedule. Every attempt is
scheduled up front and runs independently: attempts never wait for, or look
at, the outcome of earlier ones. The value written is the same each time, so
repeated writes have no cumulative effect.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Set

import aiohttp

from . import constants
from .adapters.thingspeak import ThingSpeakError
from .config import ConfigurationError
from .core import CommandMailbox, Device, FieldWriter

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScheduledAttempt:
    index: int
    delay_seconds: float
    field_number: int
    value: int


class DispatchBatch:
    """The set of write attempts scheduled for one device transition."""

    def __init__(self, device: Device, attempts: List[ScheduledAttempt]) -> None:
        self.device_id = device.id
        self.device_name = device.name
        self.attempts = tuple(attempts)
        self._timers: List[asyncio.TimerHandle] = []
        self._tasks: Set[asyncio.Task[None]] = set()
        self._done: List[asyncio.Future[None]] = []

    @property
    def empty(self) -> bool:
        return not self.attempts

    @property
    def pending(self) -> int:
        return sum(1 for future in self._done if not future.done())

    def cancel(self) -> None:
        """Cancel attempts whose timer has not fired yet."""

        for timer, done in zip(self._timers, self._done):
            timer.cancel()
            if not done.done():
                done.cancel()

    async def wait(self) -> None:
        """Wait until every attempt has run or been cancelled."""

        if self._done:
            await asyncio.gather(*self._done, return_exceptions=True)


class DeviceCommandDispatcher:
    """Fans a device on/off state out to a fixed batch of ThingSpeak writes."""

    def __init__(
        self,
        writer: FieldWriter,
        *,
        device_fields: Optional[Mapping[int, int]] = None,
        attempts: int = 15,
        spacing_seconds: float = 2.0,
    ) -> None:
        self._writer = writer
        self._device_fields: Dict[int, int] = dict(
            constants.DEFAULT_DEVICE_FIELDS if device_fields is None else device_fields
        )
        self.attempts = attempts
        self.spacing_seconds = spacing_seconds
        self._batches: Set[DispatchBatch] = set()

    def field_for(self, device_id: int) -> Optional[int]:
        return self._device_fields.get(device_id)

    def plan(self, device: Device) -> List[ScheduledAttempt]:
        """Return the attempts a dispatch of ``device`` would schedule."""

        field_number = self.field_for(device.id)
        if field_number is None:
            return []
        value = 1 if device.is_on else 0
        return [
            ScheduledAttempt(
                index=index,
                delay_seconds=index * self.spacing_seconds,
                field_number=field_number,
                value=value,
            )
            for index in range(self.attempts)
        ]

    def dispatch(self, device: Device) -> DispatchBatch:
        """Schedule every write attempt for the device's current state.

        Devices without a mapped field produce an empty batch. Must be
        called from the event loop.
        """

        batch = DispatchBatch(device, self.plan(device))
        if batch.empty:
            LOGGER.debug("Device %s (%s) has no remote field; not dispatching", device.id, device.name)
            return batch

        loop = asyncio.get_running_loop()
        status = "ON" if device.is_on else "OFF"
        for attempt in batch.attempts:
            done: asyncio.Future[None] = loop.create_future()
            batch._done.append(done)
            batch._timers.append(
                loop.call_later(
                    attempt.delay_seconds,
                    self._launch,
                    batch,
                    attempt,
                    status,
                    done,
                )
            )

        self._batches.add(batch)
        asyncio.gather(*batch._done, return_exceptions=True).add_done_callback(
            lambda _: self._batches.discard(batch)
        )
        LOGGER.info(
            "Scheduled %d writes of field%d=%d for %s",
            len(batch.attempts),
            batch.attempts[0].field_number,
            batch.attempts[0].value,
            device.name,
        )
        return batch

    def cancel_all(self) -> None:
        for batch in list(self._batches):
            batch.cancel()

    async def wait_all(self) -> None:
        for batch in list(self._batches):
            await batch.wait()

    def _launch(
        self,
        batch: DispatchBatch,
        attempt: ScheduledAttempt,
        status: str,
        done: asyncio.Future[None],
    ) -> None:
        if done.done():
            return
        task = asyncio.ensure_future(self._send(batch, attempt, status))
        batch._tasks.add(task)

        def _finish(finished: asyncio.Task[None]) -> None:
            batch._tasks.discard(finished)
            if not done.done():
                done.set_result(None)

        task.add_done_callback(_finish)

    async def _send(self, batch: DispatchBatch, attempt: ScheduledAttempt, status: str) -> None:
        number = attempt.index + 1
        try:
            body = await self._writer.write_field(attempt.field_number, attempt.value)
        except (ThingSpeakError, ConfigurationError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOGGER.warning(
                "Attempt %d: Error setting device %s to %s - %s",
                number,
                batch.device_name,
                status,
                exc,
            )
            return

        if body == "0":
            LOGGER.warning(
                "Attempt %d: Update for device %s to %s not accepted, field%d=%d",
                number,
                batch.device_name,
                status,
                attempt.field_number,
                attempt.value,
            )
            return

        LOGGER.info(
            "Attempt %d: Device %s set to %s, field%d=%d",
            number,
            batch.device_name,
            status,
            attempt.field_number,
            attempt.value,
        )


class DeviceController:
    """Local device catalogue with simulated load and remote propagation.

    Each device moves between OFF and ON. Entering ON draws a new simulated
    usage; entering OFF zeroes it. Every transition dispatches one batch.
    """

    def __init__(
        self,
        dispatcher: DeviceCommandDispatcher,
        *,
        names: Optional[Mapping[int, str]] = None,
        mailbox: Optional[CommandMailbox] = None,
        usage_min: float = 0.5,
        usage_max: float = 3.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self.mailbox = mailbox or CommandMailbox()
        self._usage_min = usage_min
        self._usage_max = usage_max
        self._rng = rng or random.Random()
        catalogue = constants.DEFAULT_DEVICE_NAMES if names is None else names
        self._devices: Dict[int, Device] = {
            device_id: Device(id=device_id, name=name)
            for device_id, name in catalogue.items()
        }
        self.selected_device_id: Optional[int] = None

    @property
    def devices(self) -> List[Device]:
        return list(self._devices.values())

    def get(self, device_id: int) -> Optional[Device]:
        return self._devices.get(device_id)

    def set_state(self, device_id: int, turn_on: bool) -> Optional[DispatchBatch]:
        device = self._devices.get(device_id)
        if device is None:
            LOGGER.warning("Ignoring command for unknown device %s", device_id)
            return None

        device.is_on = turn_on
        if turn_on:
            device.current_usage = self._rng.uniform(self._usage_min, self._usage_max)
        else:
            device.current_usage = 0.0
        self.selected_device_id = device.id

        LOGGER.info(
            "Device %s turned %s (%.1f kWh/hr)",
            device.name,
            "ON" if turn_on else "OFF",
            device.current_usage,
        )
        return self._dispatcher.dispatch(device)

    def toggle(self, device_id: int) -> Optional[DispatchBatch]:
        device = self._devices.get(device_id)
        if device is None:
            LOGGER.warning("Ignoring toggle for unknown device %s", device_id)
            return None
        return self.set_state(device_id, not device.is_on)

    def drain_mailbox(self) -> Optional[DispatchBatch]:
        """Apply the pending mailbox command, if any."""

        request = self.mailbox.take_and_clear()
        if request is None:
            return None
        return self.set_state(request.device_id, request.desired_on_state)
