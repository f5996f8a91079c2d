"""Request and response payloads for the speech synthesis gateway."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Hard bounds on inbound text; the provider limit is applied later by truncation.
MIN_TEXT_CHARS = 1
MAX_TEXT_CHARS = 10_000

AUDIO_CONTENT_TYPE = "audio/mpeg"


class ConvertRequest(BaseModel):
    """Text to synthesize and the optional voice to synthesize it with."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., min_length=MIN_TEXT_CHARS, max_length=MAX_TEXT_CHARS)
    voice_id: Optional[str] = Field(
        default=None,
        min_length=1,
        alias="voiceId",
        description="Provider voice identifier. Defaults to the gateway's voice.",
    )


class ConvertResponse(BaseModel):
    """Base64 encoded audio, safe to carry over a JSON channel."""

    model_config = ConfigDict(populate_by_name=True)

    audio: str
    content_type: str = Field(default=AUDIO_CONTENT_TYPE, alias="contentType")


class Voice(BaseModel):
    """One entry of the provider's voice catalog."""

    id: str
    name: str
    category: Optional[str] = None


class ProviderErrorDetail(BaseModel):
    message: str
    provider_status: int


class GatewayHealth(BaseModel):
    status: str = "ok"
    provider_configured: bool
    default_voice_id: str


__all__ = [
    "AUDIO_CONTENT_TYPE",
    "ConvertRequest",
    "ConvertResponse",
    "GatewayHealth",
    "MAX_TEXT_CHARS",
    "MIN_TEXT_CHARS",
    "ProviderErrorDetail",
    "Voice",
]
