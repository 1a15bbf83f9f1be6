"""Voice notes: download the audio and turn it into text."""

from typing import Optional

import httpx

from chatrelay.logging_config import get_logger
from chatrelay.services.llm import LLMProvider
from chatrelay.services.llm.openai_provider import OpenAIProviderError

logger = get_logger("transcription_service")

MSG_TRANSCRIPTION_FAILED = "No logré entender el audio. ¿Puedes intentar de nuevo o escribir tu mensaje?"


async def download_media_bytes(url: str, max_bytes: int) -> tuple[bytes | None, str | None]:
    if not url:
        return None, "missing_url"

    data = bytearray()
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    if not chunk:
                        continue
                    data.extend(chunk)
                    if max_bytes and len(data) > max_bytes:
                        return None, "too_large"
    except httpx.HTTPError as exc:
        return None, f"download_failed:{exc}"

    return bytes(data), None


async def transcribe_voice_note(
    provider: Optional[LLMProvider],
    media_url: str,
    *,
    mime_type: Optional[str] = None,
    max_bytes: int = 8 * 1024 * 1024,
    language: str = "es",
) -> Optional[str]:
    """Return the transcript of a voice note, or None when it cannot be produced."""
    if provider is None:
        logger.warning("Voice note skipped: no transcription provider configured")
        return None

    audio, error = await download_media_bytes(media_url, max_bytes)
    if audio is None:
        logger.warning("Voice note download failed", extra={"context": {"url": media_url, "error": error}})
        return None

    try:
        transcript = await provider.transcribe_audio(
            audio_bytes=audio,
            filename="audio.ogg",
            mime_type=mime_type or "audio/ogg",
            language=language,
        )
    except (OpenAIProviderError, httpx.HTTPError, ValueError) as exc:
        logger.warning(f"Audio transcription failed: {exc}")
        return None

    cleaned = (transcript or "").strip()
    return cleaned or None
