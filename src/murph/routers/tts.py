"""Routes exposing speech synthesis and the voice catalog."""

from __future__ import annotations

import base64
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..schemas.tts import ConvertRequest, ConvertResponse, ProviderErrorDetail, Voice
from ..services.tts_service import (
    TTSNotConfiguredError,
    TTSProviderError,
    TTSService,
    TTSValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/tts", tags=["tts"])

# Set on convert responses when the text was cut to the provider limit
TRUNCATED_HEADER = "X-Text-Truncated"


def get_tts_service(request: Request) -> TTSService:
    service = getattr(request.app.state, "tts_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="TTS service unavailable")
    return service


def _provider_exception(exc: TTSProviderError, message: str) -> HTTPException:
    if isinstance(exc, TTSNotConfiguredError):
        return HTTPException(status_code=503, detail=str(exc.detail))
    detail = ProviderErrorDetail(message=message, provider_status=exc.status_code)
    return HTTPException(status_code=502, detail=detail.model_dump())


@router.post("/convert", response_model=ConvertResponse)
async def convert_text(
    payload: ConvertRequest,
    response: Response,
    service: TTSService = Depends(get_tts_service),
) -> ConvertResponse:
    logger.debug(f"TTS convert request ({len(payload.text)} chars, voice={payload.voice_id})")
    try:
        result = await service.synthesize(payload.text, payload.voice_id)
    except TTSValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc.detail)) from exc
    except TTSProviderError as exc:
        raise _provider_exception(
            exc, f"Failed to convert text to speech: {exc.status_code}"
        ) from exc

    if result.truncated:
        response.headers[TRUNCATED_HEADER] = "true"

    # Convert audio to base64 for transmission
    encoded = base64.b64encode(result.audio_bytes).decode("ascii")
    return ConvertResponse(audio=encoded, content_type=result.content_type)


@router.get("/voices", response_model=list[Voice])
async def list_voices(
    service: TTSService = Depends(get_tts_service),
) -> list[Voice]:
    try:
        return await service.list_voices()
    except TTSProviderError as exc:
        raise _provider_exception(exc, "Failed to fetch voices") from exc


__all__ = ["TRUNCATED_HEADER", "router", "get_tts_service"]
