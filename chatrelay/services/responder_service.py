"""Reply to ordinary turns: keyword flows first, generative fallback second."""

from dataclasses import dataclass
from typing import List, Optional

import httpx

from chatrelay.errors import Result, TransientCollaboratorError
from chatrelay.logging_config import get_logger
from chatrelay.services.history_service import DEFAULT_CONTEXT_MESSAGES, ChatHistoryStore
from chatrelay.services.llm import LLMProvider
from chatrelay.services.llm.openai_provider import OpenAIProviderError
from chatrelay.services.settings_service import SettingsService

logger = get_logger("responder_service")

DEFAULT_SYSTEM_PROMPT = (
    "Eres un asistente de ventas por WhatsApp. Responde en español, de forma breve, "
    "amable y sin inventar precios ni stock."
)
DEFAULT_TEMPERATURE = 0.7
MSG_TECHNICAL_ERROR = "Disculpa, tuve un problema técnico. ¿Puedes intentar de nuevo?"


@dataclass
class Reply:
    text: str
    media_url: Optional[str] = None
    source: str = "ai"


def _coerce_temperature(value: object) -> float:
    try:
        temperature = float(value)
    except (TypeError, ValueError):
        return DEFAULT_TEMPERATURE
    return min(max(temperature, 0.0), 2.0)


class ResponderService:
    def __init__(
        self,
        settings_service: SettingsService,
        provider: Optional[LLMProvider] = None,
        history: Optional[ChatHistoryStore] = None,
        history_limit: int = DEFAULT_CONTEXT_MESSAGES,
    ):
        self._settings = settings_service
        self._provider = provider
        self._history = history
        self._history_limit = history_limit

    def _load_history(self, phone: str) -> List[dict]:
        if self._history is None:
            return []
        try:
            return self._history.get_recent(phone, self._history_limit)
        except TransientCollaboratorError as exc:
            logger.warning("Chat history unavailable, replying without context", extra={"context": {"error": str(exc)}})
            return []

    def _remember(self, phone: str, role: str, content: str) -> None:
        if self._history is None:
            return
        try:
            self._history.save_message(phone, role, content)
        except TransientCollaboratorError as exc:
            logger.warning("Chat history not saved", extra={"context": {"phone": phone, "role": role, "error": str(exc)}})

    def match_flow(self, text: str) -> Optional[dict]:
        lowered = (text or "").lower()
        try:
            flows = self._settings.get_keyword_flows()
        except TransientCollaboratorError as exc:
            logger.warning("Keyword flows unavailable, using AI", extra={"context": {"error": str(exc)}})
            return None
        for flow in flows:
            keyword = str(flow.get("keyword") or "").strip().lower()
            if keyword and keyword in lowered:
                return flow
        return None

    def _responder_config(self) -> dict:
        try:
            return self._settings.get_responder_config()
        except TransientCollaboratorError as exc:
            logger.warning("Responder config unavailable, using defaults", extra={"context": {"error": str(exc)}})
            return {}

    async def generate(self, text: str, phone: str) -> Result[Reply]:
        if self._provider is None:
            return Result.failure("LLM provider not configured", code="not_configured")

        config = self._responder_config()
        # History is read before the current turn is stored, so it never contains it.
        history = self._load_history(phone)
        self._remember(phone, "user", text)
        messages = [
            {"role": "system", "content": config.get("system_prompt") or DEFAULT_SYSTEM_PROMPT},
            *history,
            {"role": "user", "content": text},
        ]
        try:
            response = await self._provider.generate(
                messages,
                model=config.get("model") or None,
                temperature=_coerce_temperature(config.get("temperature", DEFAULT_TEMPERATURE)),
            )
        except (OpenAIProviderError, httpx.HTTPError) as exc:
            logger.error("AI response failed", extra={"context": {"phone": phone, "error": str(exc)}})
            return Result.failure(str(exc), code="llm_error")

        content = (response.content or "").strip()
        if not content:
            return Result.failure("Empty AI response", code="empty_response")
        self._remember(phone, "assistant", content)
        return Result.success(Reply(text=content, source="ai"))

    async def respond(self, text: str, phone: str) -> Result[Reply]:
        flow = self.match_flow(text)
        if flow is not None:
            answer = str(flow.get("answer") or "").strip()
            if answer:
                logger.info("Keyword flow matched", extra={"context": {"phone": phone, "keyword": flow.get("keyword")}})
                media_url = str(flow.get("media_url") or "").strip() or None
                return Result.success(Reply(text=answer, media_url=media_url, source="keyword"))
            logger.info("Keyword flow has no answer, using AI", extra={"context": {"keyword": flow.get("keyword")}})
        return await self.generate(text, phone)
