import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import status

from murph.config import Settings, get_settings
from murph.schemas.tts import AUDIO_CONTENT_TYPE, MIN_TEXT_CHARS, Voice

logger = logging.getLogger(__name__)


class TTSError(RuntimeError):
    """Base error raised by the synthesis gateway."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


class TTSValidationError(TTSError):
    """Raised when input text falls outside the accepted bounds."""

    def __init__(self, detail: Any):
        super().__init__(422, detail)


class TTSProviderError(TTSError):
    """Raised when ElevenLabs rejects a request or cannot be reached.

    ``status_code`` carries the provider's HTTP status when there was a
    response and 502 for transport failures.
    """


class TTSNotConfiguredError(TTSProviderError):
    """Raised before any request when no ElevenLabs key is configured."""

    def __init__(self, detail: Any = "Text-to-speech is not configured on server"):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, detail)


@dataclass(frozen=True)
class SynthesizedAudio:
    audio_bytes: bytes
    content_type: str = AUDIO_CONTENT_TYPE
    truncated: bool = False


class TTSService:
    """
    Thin proxy in front of the ElevenLabs text-to-speech API.

    The provider credential never leaves this process. Requests are validated
    and truncated here, then forwarded with fixed voice settings. Uses a
    singleton httpx.AsyncClient for connection pooling across requests unless
    a client is injected.
    """

    # Singleton HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings()
        self._client_override = http_client

        if not self._settings.provider_configured:
            logger.warning("ELEVENLABS_API_KEY not configured. TTS will not be available.")
        else:
            logger.info("TTS provider available: elevenlabs")

    @classmethod
    def get_http_client(cls, timeout: float = 30.0) -> httpx.AsyncClient:
        """Get singleton HTTP client for connection pooling."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(timeout=timeout)
            logger.info("Created singleton httpx.AsyncClient for TTS")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the singleton HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed TTS HTTP client")

    @property
    def default_voice_id(self) -> str:
        return self._settings.default_voice_id

    @property
    def provider_configured(self) -> bool:
        return self._settings.provider_configured

    @property
    def _base_url(self) -> str:
        return str(self._settings.elevenlabs_base_url).rstrip("/")

    def _client(self) -> httpx.AsyncClient:
        if self._client_override is not None:
            return self._client_override
        return self.get_http_client(self._settings.request_timeout)

    def _api_key(self) -> str:
        if not self.provider_configured:
            logger.error("ElevenLabs API key not configured")
            raise TTSNotConfiguredError()
        assert self._settings.elevenlabs_api_key is not None
        return self._settings.elevenlabs_api_key.get_secret_value()

    def validate_text(self, text: str) -> None:
        max_chars = self._settings.max_input_chars
        if len(text) < MIN_TEXT_CHARS:
            raise TTSValidationError("Text must not be empty")
        if len(text) > max_chars:
            raise TTSValidationError(
                f"Text must be at most {max_chars} characters (got {len(text)})"
            )

    def truncate(self, text: str) -> str:
        """Cut text to the provider limit. Not sentence aware."""
        return text[: self._settings.provider_max_chars]

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> SynthesizedAudio:
        """
        Synthesize text with ElevenLabs and return the raw MP3 bytes.
        Text beyond the provider limit is dropped silently.
        """
        self.validate_text(text)
        api_key = self._api_key()

        voice = voice_id or self.default_voice_id
        text_to_convert = self.truncate(text)
        truncated = len(text_to_convert) < len(text)
        if truncated:
            logger.info(
                f"Truncated TTS input from {len(text)} to {len(text_to_convert)} characters"
            )

        url = f"{self._base_url}/text-to-speech/{voice}"
        headers = {
            "Accept": AUDIO_CONTENT_TYPE,
            "Content-Type": "application/json",
            "xi-api-key": api_key,
        }
        payload = {
            "text": text_to_convert,
            "model_id": self._settings.tts_model_id,
            "voice_settings": {
                "stability": self._settings.stability,
                "similarity_boost": self._settings.similarity_boost,
            },
        }

        try:
            response = await self._client().post(
                url,
                headers=headers,
                json=payload,
                timeout=self._settings.request_timeout,
            )
        except httpx.HTTPError as exc:
            logger.error(f"Network error contacting ElevenLabs: {exc}")
            raise TTSProviderError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            logger.error(f"ElevenLabs API error ({response.status_code}): {response.text}")
            raise TTSProviderError(
                response.status_code,
                f"Failed to convert text to speech: {response.status_code}",
            )

        audio_data = response.content
        logger.info(
            f"ElevenLabs TTS synthesized {len(audio_data)} bytes for text: {text_to_convert[:50]}..."
        )
        return SynthesizedAudio(audio_bytes=audio_data, truncated=truncated)

    async def list_voices(self) -> list[Voice]:
        """Fetch the provider's voice catalog in the order it is returned."""
        api_key = self._api_key()

        try:
            response = await self._client().get(
                f"{self._base_url}/voices",
                headers={"xi-api-key": api_key},
                timeout=self._settings.request_timeout,
            )
        except httpx.HTTPError as exc:
            logger.error(f"Network error fetching ElevenLabs voices: {exc}")
            raise TTSProviderError(status.HTTP_502_BAD_GATEWAY, "Failed to fetch voices") from exc

        if response.status_code >= 400:
            logger.error(f"ElevenLabs voices error ({response.status_code})")
            raise TTSProviderError(response.status_code, "Failed to fetch voices")

        try:
            data = response.json()
        except ValueError as exc:
            raise TTSProviderError(status.HTTP_502_BAD_GATEWAY, "Failed to fetch voices") from exc

        voices = data.get("voices") if isinstance(data, dict) else None
        if not isinstance(voices, list):
            raise TTSProviderError(status.HTTP_502_BAD_GATEWAY, "Failed to fetch voices")

        return [
            Voice(
                id=item["voice_id"],
                name=item.get("name") or item["voice_id"],
                category=item.get("category"),
            )
            for item in voices
            if isinstance(item, dict) and item.get("voice_id")
        ]


__all__ = [
    "SynthesizedAudio",
    "TTSError",
    "TTSNotConfiguredError",
    "TTSProviderError",
    "TTSService",
    "TTSValidationError",
]
