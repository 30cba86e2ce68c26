"""Protocol definitions for the remote telemetry service."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .models import FeedRecord


class TelemetrySource(Protocol):
    """Minimal contract for components that read the latest channel record."""

    async def fetch_latest_feed(self) -> Optional[FeedRecord]:
        """Return the most recent feed entry, or ``None`` when the channel is empty.

        Raises:
            ThingSpeakError: On transport failure or a non-2xx response.
            FeedDecodeError: If the response body has an unexpected shape.
        """
        ...


class FieldWriter(Protocol):
    """Minimal contract for components that write a single channel field."""

    async def write_field(self, field_number: int, value: Any) -> str:
        """Write ``value`` to ``field<field_number>`` and return the raw response body."""
        ...
