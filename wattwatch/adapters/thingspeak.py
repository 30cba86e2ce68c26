"""ThingSpeak adapter providing channel read and field write helpers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..config import ThingSpeakConfig
from ..core import FeedDecodeError, FeedRecord, decode_latest_feed

LOGGER = logging.getLogger(__name__)


class ThingSpeakError(RuntimeError):
    """Raised when a ThingSpeak request fails in transport or with a non-2xx status."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ThingSpeakClient:
    """Non-blocking client for a single ThingSpeak channel."""

    def __init__(
        self,
        config: ThingSpeakConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config
        self._base_url = self.config.base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def fetch_latest_feed(self) -> Optional[FeedRecord]:
        """Fetch the most recent record of the configured channel.

        Returns:
            The last entry of the ``feeds`` list, or None when the channel has no entries.

        Raises:
            ThingSpeakError: On transport failure, timeout or a non-2xx response.
            FeedDecodeError: If the body is not JSON or has an unexpected shape.
        """

        channel_id = self.config.require_channel()
        url = f"{self._base_url}/channels/{channel_id}/feeds.json"
        params: Dict[str, str] = {"results": "1"}
        if self.config.read_api_key:
            params["api_key"] = self.config.read_api_key

        payload = await self._get_json(url, params)
        return decode_latest_feed(payload)

    async def write_field(self, field_number: int, value: Any) -> str:
        """Set ``field<field_number>`` to ``value`` through the update endpoint.

        ThingSpeak answers with the new entry id, or ``"0"`` when the update was
        not accepted (for example when rate limited). The raw body is returned
        so callers can log it.

        Raises:
            ThingSpeakError: On transport failure, timeout or a non-2xx response.
        """

        api_key = self.config.require_write_key()
        url = f"{self._base_url}/update"
        params = {"api_key": api_key, f"field{field_number}": str(value)}
        return await self._get_text(url, params)

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "ThingSpeakClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _get_json(self, url: str, params: Dict[str, str]) -> Any:
        session = await self._ensure_session()
        timeout = self.config.request_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                async with session.get(url, params=params) as response:
                    if response.status >= 400:
                        detail = await response.text()
                        raise ThingSpeakError(
                            f"ThingSpeak read failed with status {response.status}: {detail.strip()}",
                            status=response.status,
                        )
                    try:
                        return await response.json(content_type=None)
                    except ValueError as exc:
                        raise FeedDecodeError(
                            f"ThingSpeak returned malformed JSON: {exc}"
                        ) from exc
        except asyncio.TimeoutError as exc:
            raise ThingSpeakError(
                f"ThingSpeak read timed out after {timeout:.1f}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise ThingSpeakError(f"ThingSpeak read failed: {exc}") from exc

    async def _get_text(self, url: str, params: Dict[str, str]) -> str:
        session = await self._ensure_session()
        timeout = self.config.request_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                async with session.get(url, params=params) as response:
                    body = await response.text()
                    if response.status >= 400:
                        raise ThingSpeakError(
                            f"ThingSpeak update failed with status {response.status}: {body.strip()}",
                            status=response.status,
                        )
                    return body.strip()
        except asyncio.TimeoutError as exc:
            raise ThingSpeakError(
                f"ThingSpeak update timed out after {timeout:.1f}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise ThingSpeakError(f"ThingSpeak update failed: {exc}") from exc
