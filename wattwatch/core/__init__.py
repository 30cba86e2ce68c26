"""Core primitives for wattwatch."""

from .mailbox import CommandMailbox
from .models import (
    Device,
    DeviceCommandRequest,
    FeedDecodeError,
    FeedRecord,
    TelemetrySample,
    TelemetrySnapshot,
    decode_latest_feed,
    parse_number,
    utcnow,
)
from .protocols import FieldWriter, TelemetrySource

__all__ = [
    "CommandMailbox",
    "Device",
    "DeviceCommandRequest",
    "FeedDecodeError",
    "FeedRecord",
    "FieldWriter",
    "TelemetrySample",
    "TelemetrySnapshot",
    "TelemetrySource",
    "decode_latest_feed",
    "parse_number",
    "utcnow",
]
