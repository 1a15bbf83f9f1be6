from typing import List, Optional

import httpx

from chatrelay.logging_config import get_logger
from chatrelay.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProviderError(Exception):
    pass


class OpenAIProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        transcribe_model: str = "whisper-1",
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.transcribe_model = transcribe_model
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.openai.com/v1/chat/completions"
        self.audio_url = "https://api.openai.com/v1/audio/transcriptions"

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> LLMResponse:
        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.post(
                self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                json=payload,
            )

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text[:500]}")
            raise OpenAIProviderError(f"OpenAI API error: {response.status_code}")

        data = response.json()
        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content") or ""

        return LLMResponse(content=content, model=data.get("model", model), usage=data.get("usage"))

    async def transcribe_audio(
        self,
        *,
        audio_bytes: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        language: Optional[str] = None,
    ) -> str:
        if not audio_bytes:
            raise ValueError("audio_bytes is empty")

        files = {"file": (filename or "audio", audio_bytes, mime_type or "application/octet-stream")}
        data = {"model": self.transcribe_model, "response_format": "text"}
        if language:
            data["language"] = language

        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                self.audio_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                files=files,
                data=data,
            )

        if response.status_code != 200:
            logger.error(f"OpenAI transcription error: {response.text[:500]}")
            raise OpenAIProviderError(f"OpenAI transcription error: {response.status_code}")

        transcript = (response.text or "").strip()
        if not transcript:
            logger.warning("OpenAI transcription returned empty text")
        return transcript
