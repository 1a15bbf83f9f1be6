from chatrelay.services.llm.base import LLMProvider, LLMResponse
from chatrelay.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider"]
