import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from chatrelay.errors import TransientCollaboratorError
from chatrelay.services.llm.base import LLMResponse
from chatrelay.services.llm.openai_provider import OpenAIProviderError
from chatrelay.services.responder_service import DEFAULT_SYSTEM_PROMPT, ResponderService


@pytest.fixture
def settings_store():
    return Mock(
        get_keyword_flows=Mock(return_value=[{"keyword": "precio", "answer": "Desde $9.990", "media_url": "https://x/p.jpg"}]),
        get_responder_config=Mock(return_value={}),
    )


@pytest.fixture
def provider():
    return Mock(generate=AsyncMock(return_value=LLMResponse(content=" Hola, ¿en qué te ayudo? ", model="gpt-4o-mini")))


class TestRespond:
    def test_keyword_flow_wins(self, settings_store, provider):
        result = asyncio.run(ResponderService(settings_store, provider).respond("¿Cuál es el PRECIO?", "569"))

        assert result.ok is True
        assert result.value.source == "keyword"
        assert result.value.text == "Desde $9.990"
        assert result.value.media_url == "https://x/p.jpg"
        provider.generate.assert_not_called()

    def test_falls_back_to_ai(self, settings_store, provider):
        result = asyncio.run(ResponderService(settings_store, provider).respond("hola", "569"))

        assert result.ok is True
        assert result.value.source == "ai"
        assert result.value.text == "Hola, ¿en qué te ayudo?"
        messages = provider.generate.call_args[0][0]
        assert messages[0] == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}

    def test_flow_lookup_failure_uses_ai(self, settings_store, provider):
        settings_store.get_keyword_flows.side_effect = TransientCollaboratorError("db down")

        result = asyncio.run(ResponderService(settings_store, provider).respond("precio", "569"))

        assert result.value.source == "ai"

    def test_responder_config_overrides(self, settings_store, provider):
        settings_store.get_responder_config.return_value = {
            "system_prompt": "Eres una tienda de flores",
            "model": "gpt-4o",
            "temperature": "5",
        }

        asyncio.run(ResponderService(settings_store, provider).generate("hola", "569"))

        kwargs = provider.generate.call_args[1]
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 2.0
        assert provider.generate.call_args[0][0][0]["content"] == "Eres una tienda de flores"


class TestGenerateFailures:
    def test_not_configured(self, settings_store):
        result = asyncio.run(ResponderService(settings_store).generate("hola", "569"))
        assert result.ok is False
        assert result.error_code == "not_configured"

    def test_provider_error(self, settings_store, provider):
        provider.generate.side_effect = OpenAIProviderError("OpenAI API error: 500")
        result = asyncio.run(ResponderService(settings_store, provider).generate("hola", "569"))
        assert result.error_code == "llm_error"

    def test_empty_response(self, settings_store, provider):
        provider.generate.return_value = LLMResponse(content="  ", model="gpt-4o-mini")
        result = asyncio.run(ResponderService(settings_store, provider).generate("hola", "569"))
        assert result.error_code == "empty_response"


class TestConversationHistory:
    def test_previous_turns_are_sent_and_both_sides_saved(self, settings_store, provider):
        history = Mock(get_recent=Mock(return_value=[
            {"role": "user", "content": "¿Tienen zapatillas?"},
            {"role": "assistant", "content": "Sí, desde $29.990"},
        ]))
        service = ResponderService(settings_store, provider, history=history, history_limit=10)

        asyncio.run(service.respond("¿y en talla 42?", "569"))

        history.get_recent.assert_called_once_with("569", 10)
        messages = provider.generate.call_args[0][0]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1] == {"role": "user", "content": "¿y en talla 42?"}
        assert history.save_message.call_args_list[0].args == ("569", "user", "¿y en talla 42?")
        assert history.save_message.call_args_list[1].args == ("569", "assistant", "Hola, ¿en qué te ayudo?")

    def test_history_failure_does_not_block_reply(self, settings_store, provider):
        history = Mock(
            get_recent=Mock(side_effect=TransientCollaboratorError("db down")),
            save_message=Mock(side_effect=TransientCollaboratorError("db down")),
        )
        service = ResponderService(settings_store, provider, history=history)

        result = asyncio.run(service.generate("hola", "569"))

        assert result.ok is True
        assert len(provider.generate.call_args[0][0]) == 2

    def test_keyword_replies_skip_history(self, settings_store, provider):
        history = Mock(get_recent=Mock(return_value=[]))
        service = ResponderService(settings_store, provider, history=history)

        asyncio.run(service.respond("precio", "569"))

        history.save_message.assert_not_called()
