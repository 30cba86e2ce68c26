"""Bounded, insertion-ordered window of accepted telemetry samples."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Optional, Tuple

from ..core import TelemetrySample


class SampleWindow:
    """Keeps the most recent ``capacity`` samples; the oldest is evicted first."""

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 1:
            raise ValueError("Sample window capacity must be at least 1")
        self._samples: Deque[TelemetrySample] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        assert self._samples.maxlen is not None
        return self._samples.maxlen

    def append(self, sample: TelemetrySample) -> None:
        self._samples.append(sample)

    def snapshot(self) -> Tuple[TelemetrySample, ...]:
        return tuple(self._samples)

    def latest(self) -> Optional[TelemetrySample]:
        return self._samples[-1] if self._samples else None

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[TelemetrySample]:
        return iter(tuple(self._samples))
