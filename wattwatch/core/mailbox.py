"""Single-slot hand-off for pending device commands.

Producers (the chat assistant, the CLI) write the latest request; the device
controller takes it. A write before the previous value has been taken
replaces it, so only the most recent request is ever acted upon.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import DeviceCommandRequest

LOGGER = logging.getLogger(__name__)


class CommandMailbox:
    """Overwrite-on-write slot holding at most one ``DeviceCommandRequest``."""

    def __init__(self) -> None:
        self._pending: Optional[DeviceCommandRequest] = None

    def set(self, request: DeviceCommandRequest) -> None:
        if self._pending is not None:
            LOGGER.debug(
                "Replacing unconsumed command for device %s with device %s",
                self._pending.device_id,
                request.device_id,
            )
        self._pending = request

    def peek(self) -> Optional[DeviceCommandRequest]:
        return self._pending

    def take_and_clear(self) -> Optional[DeviceCommandRequest]:
        request, self._pending = self._pending, None
        return request

    @property
    def has_pending(self) -> bool:
        return self._pending is not None
