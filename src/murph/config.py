"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Rachel - warm, calm female
DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"


class Settings(BaseSettings):
    """Gateway configuration loaded from environment variables and `.env`.

    The provider credential lives here only. Nothing in this class is ever
    serialized back to clients.
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    elevenlabs_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("ELEVENLABS_API_KEY", "elevenlabs_api_key"),
    )
    elevenlabs_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.elevenlabs.io/v1"),
        validation_alias=AliasChoices("ELEVENLABS_BASE_URL", "elevenlabs_base_url"),
    )
    default_voice_id: str = Field(
        default=DEFAULT_VOICE_ID,
        min_length=1,
        validation_alias=AliasChoices("ELEVENLABS_VOICE_ID", "default_voice_id"),
    )
    tts_model_id: str = Field(
        default="eleven_monolingual_v1",
        validation_alias=AliasChoices("ELEVENLABS_MODEL_ID", "tts_model_id"),
    )
    stability: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("TTS_STABILITY", "stability"),
    )
    similarity_boost: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("TTS_SIMILARITY_BOOST", "similarity_boost"),
    )
    max_input_chars: int = Field(
        default=10_000,
        ge=1,
        validation_alias=AliasChoices("TTS_MAX_INPUT_CHARS", "max_input_chars"),
    )
    provider_max_chars: int = Field(
        default=5_000,
        ge=1,
        validation_alias=AliasChoices("TTS_PROVIDER_MAX_CHARS", "provider_max_chars"),
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("TTS_REQUEST_TIMEOUT", "request_timeout"),
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS", "cors_allow_origins"),
    )

    @property
    def provider_configured(self) -> bool:
        return bool(
            self.elevenlabs_api_key and self.elevenlabs_api_key.get_secret_value()
        )


class ClientSettings(BaseSettings):
    """Settings for the playback client. Holds no provider credentials."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    gateway_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("http://localhost:8000"),
        validation_alias=AliasChoices("MURPH_GATEWAY_URL", "gateway_url"),
    )
    request_timeout: float = Field(
        default=60.0,
        ge=1,
        validation_alias=AliasChoices("MURPH_GATEWAY_TIMEOUT", "request_timeout"),
    )
    voice_catalog_ttl_seconds: float = Field(
        default=3600.0,
        ge=0,
        validation_alias=AliasChoices(
            "VOICE_CATALOG_TTL_SECONDS",
            "voice_catalog_ttl_seconds",
        ),
    )
    default_voice_id: str = Field(
        default=DEFAULT_VOICE_ID,
        min_length=1,
        validation_alias=AliasChoices("MURPH_VOICE_ID", "default_voice_id"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


@lru_cache(maxsize=1)
def get_client_settings() -> ClientSettings:
    """Return a cached `ClientSettings` instance."""

    return ClientSettings()  # pyright: ignore[reportCallIssue]


__all__ = [
    "ClientSettings",
    "DEFAULT_VOICE_ID",
    "Settings",
    "get_client_settings",
    "get_settings",
]
