"""Domain models for telemetry and device commands."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .. import constants


class FeedDecodeError(RuntimeError):
    """Raised when a ThingSpeak feed payload has an unexpected shape."""


@dataclass(frozen=True, slots=True)
class TelemetrySample:
    """One accepted usage reading, as plotted on the usage chart."""

    timestamp: datetime
    usage_value: float
    predicted_value: float


@dataclass(frozen=True, slots=True)
class TelemetrySnapshot:
    remaining_balance_percent: float = constants.DEFAULT_REMAINING_BALANCE
    battery_temperature: float = constants.DEFAULT_BATTERY_TEMPERATURE


@dataclass(slots=True)
class Device:
    id: int
    name: str
    current_usage: float = 0.0
    is_on: bool = False


@dataclass(frozen=True, slots=True)
class DeviceCommandRequest:
    device_id: int
    desired_on_state: bool


@dataclass(frozen=True, slots=True)
class FeedRecord:
    """A single ThingSpeak feed entry with its optional string fields."""

    created_at: Optional[str] = None
    fields: Mapping[str, Optional[str]] = field(default_factory=dict)

    def value(self, name: str) -> Optional[str]:
        return self.fields.get(name)

    def number(self, name: str) -> Optional[float]:
        return parse_number(self.fields.get(name))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FeedRecord":
        created_at = payload.get("created_at")
        if created_at is not None and not isinstance(created_at, str):
            raise FeedDecodeError("feed created_at must be a string or null")

        fields: Dict[str, Optional[str]] = {}
        for name in constants.FEED_FIELD_NAMES:
            value = payload.get(name)
            if value is not None and not isinstance(value, str):
                raise FeedDecodeError(f"feed {name} must be a string or null")
            fields[name] = value
        return cls(created_at=created_at, fields=fields)


def decode_latest_feed(payload: Any) -> Optional[FeedRecord]:
    """Return the last entry of a channel feed response, if there is one.

    Raises:
        FeedDecodeError: If the payload is not a feed response object.
    """

    if not isinstance(payload, Mapping):
        raise FeedDecodeError("feed response must be a JSON object")

    feeds = payload.get("feeds")
    if feeds is None:
        return None
    if not isinstance(feeds, list):
        raise FeedDecodeError("feed response 'feeds' must be a list")
    if not feeds:
        return None

    last = feeds[-1]
    if not isinstance(last, Mapping):
        raise FeedDecodeError("feed entries must be JSON objects")
    return FeedRecord.from_payload(last)


def parse_number(raw: Optional[str]) -> Optional[float]:
    """Parse a field string into a finite float, or ``None`` when it is not one."""

    if raw is None or raw != raw.strip() or "_" in raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
