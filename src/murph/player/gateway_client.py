"""HTTP client for the synthesis gateway, plus a read-through voice cache."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..config import ClientSettings, get_client_settings
from ..schemas.tts import AUDIO_CONTENT_TYPE, MAX_TEXT_CHARS, MIN_TEXT_CHARS, Voice

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    """Wrap transport or API failures when talking to the gateway."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class GatewayValidationError(GatewayError):
    """Raised before any request when the text is out of bounds."""

    def __init__(self, detail: Any):
        super().__init__(422, detail)


@dataclass(frozen=True)
class AudioPayload:
    data: bytes
    content_type: str = AUDIO_CONTENT_TYPE


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or fallback)
    if isinstance(detail, list) and detail:
        # FastAPI validation errors
        first = detail[0]
        if isinstance(first, dict) and first.get("msg"):
            return str(first["msg"])
    if isinstance(detail, str) and detail:
        return detail
    return fallback


class GatewayClient:
    """Calls ``/api/tts/convert`` and ``/api/tts/voices`` on the gateway."""

    def __init__(self, settings: Optional[ClientSettings] = None):
        self._settings = settings or get_client_settings()

    @property
    def base_url(self) -> str:
        return str(self._settings.gateway_url).rstrip("/")

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> AudioPayload:
        if not MIN_TEXT_CHARS <= len(text) <= MAX_TEXT_CHARS:
            raise GatewayValidationError(
                f"Text must be between {MIN_TEXT_CHARS} and {MAX_TEXT_CHARS} characters"
            )

        payload: dict[str, Any] = {"text": text}
        if voice_id:
            payload["voiceId"] = voice_id

        try:
            async with httpx.AsyncClient(timeout=self._settings.request_timeout) as client:
                response = await client.post(f"{self.base_url}/api/tts/convert", json=payload)
        except httpx.HTTPError as exc:
            logger.error(f"Network error contacting gateway: {exc}")
            raise GatewayError(502, f"Network error contacting gateway: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response, "Failed to convert text to speech")
            if response.status_code == 422:
                raise GatewayValidationError(message)
            raise GatewayError(response.status_code, message)

        try:
            body = response.json()
            audio = base64.b64decode(body["audio"], validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as exc:
            raise GatewayError(502, "Gateway returned malformed audio") from exc

        content_type = body.get("contentType") or AUDIO_CONTENT_TYPE
        logger.debug(f"Received {len(audio)} bytes of {content_type} from gateway")
        return AudioPayload(data=audio, content_type=content_type)

    async def list_voices(self) -> list[Voice]:
        try:
            async with httpx.AsyncClient(timeout=self._settings.request_timeout) as client:
                response = await client.get(f"{self.base_url}/api/tts/voices")
        except httpx.HTTPError as exc:
            raise GatewayError(502, f"Network error contacting gateway: {exc}") from exc

        if response.status_code >= 400:
            raise GatewayError(
                response.status_code,
                _error_message(response, "Failed to fetch voices"),
            )

        try:
            return [Voice.model_validate(item) for item in response.json()]
        except (ValueError, TypeError) as exc:
            raise GatewayError(502, "Gateway returned a malformed voice list") from exc


class VoiceCatalog:
    """Read-through cache over the gateway's voice list.

    Fetches once and serves the cached list until ``ttl_seconds`` elapse.
    A failed refresh raises and leaves whatever was cached in place.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[Voice]]],
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._clock = clock
        self._voices: Optional[list[Voice]] = None
        self._fetched_at: Optional[float] = None

    @property
    def is_fresh(self) -> bool:
        if self._voices is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self._ttl

    async def get(self) -> list[Voice]:
        if self.is_fresh:
            assert self._voices is not None
            return list(self._voices)

        voices = await self._fetch()
        self._voices = list(voices)
        self._fetched_at = self._clock()
        logger.debug(f"Cached {len(voices)} voices")
        return list(self._voices)


__all__ = [
    "AudioPayload",
    "GatewayClient",
    "GatewayError",
    "GatewayValidationError",
    "VoiceCatalog",
]
