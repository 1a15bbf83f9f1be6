import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

from chatrelay.errors import Result, TransientCollaboratorError
from chatrelay.services.conversation_router import ConversationRouter, RouteAction
from chatrelay.services.responder_service import MSG_TECHNICAL_ERROR, Reply
from chatrelay.services.survey_service import SurveyReply

PHONE = "56911111111"


@pytest.fixture
def blocklist():
    return Mock(is_blocked=Mock(return_value=False))


@pytest.fixture
def handoff():
    return Mock(
        is_paused=Mock(return_value=False),
        detect_intent=Mock(return_value=False),
        initiate_handoff=AsyncMock(),
        config=SimpleNamespace(customer_message="Un asesor te contactará"),
    )


@pytest.fixture
def survey():
    return Mock(
        has_active_survey=Mock(return_value=False),
        is_keyword_trigger=Mock(return_value=False),
    )


@pytest.fixture
def responder():
    return Mock(respond=AsyncMock(return_value=Result.success(Reply(text="¡Hola!"))))


@pytest.fixture
def router(blocklist, handoff, survey, responder):
    return ConversationRouter(blocklist=blocklist, handoff=handoff, survey=survey, responder=responder)


def _route(router, text="hola"):
    return asyncio.run(router.route(f"{PHONE}@s.whatsapp.net", text))


class TestRoutingOrder:
    def test_blocked_number_wins_over_everything(self, router, blocklist, handoff, responder):
        blocklist.is_blocked.return_value = True
        handoff.detect_intent.return_value = True

        result = _route(router, "quiero un asesor")

        assert result.action == RouteAction.BLOCKED
        assert result.reply is None
        handoff.initiate_handoff.assert_not_called()
        responder.respond.assert_not_called()

    def test_paused_chat_is_silent(self, router, handoff, responder):
        handoff.is_paused.return_value = True

        result = _route(router)

        assert result.action == RouteAction.PAUSED
        responder.respond.assert_not_called()

    def test_handoff_request(self, router, handoff, survey):
        handoff.detect_intent.return_value = True
        survey.has_active_survey.return_value = True

        result = _route(router, "hablar con alguien")

        assert result.action == RouteAction.HANDOFF
        assert result.delivered is True
        handoff.initiate_handoff.assert_awaited_once_with(PHONE, "hablar con alguien")
        survey.answer.assert_not_called()

    def test_active_survey_consumes_turn(self, router, survey, responder):
        survey.has_active_survey.return_value = True
        survey.answer.return_value = SurveyReply(message="*Pregunta 2/2:*\nx", is_complete=False)

        result = _route(router, "respuesta")

        assert result.action == RouteAction.SURVEY_ANSWER
        assert result.reply == "*Pregunta 2/2:*\nx"
        survey.answer.assert_called_once_with(PHONE, "respuesta")
        responder.respond.assert_not_called()

    def test_survey_keyword_starts_survey(self, router, survey):
        survey.is_keyword_trigger.return_value = True
        survey.start.return_value = "Bienvenido"

        result = _route(router, "encuesta")

        assert result.action == RouteAction.SURVEY_STARTED
        assert result.reply == "Bienvenido"

    def test_falls_through_to_responder(self, router, responder):
        responder.respond.return_value = Result.success(Reply(text="Catálogo", media_url="https://x/img.jpg"))

        result = _route(router)

        assert result.action == RouteAction.RESPONDER
        assert result.reply == "Catálogo"
        assert result.media_url == "https://x/img.jpg"
        assert result.delivered is False

    def test_responder_failure_yields_technical_error(self, router, responder):
        responder.respond.return_value = Result.failure("boom", code="llm_error")

        result = _route(router)

        assert result.action == RouteAction.RESPONDER_ERROR
        assert result.reply == MSG_TECHNICAL_ERROR


class TestFailOpen:
    def test_blocklist_failure_is_treated_as_not_blocked(self, router, blocklist):
        blocklist.is_blocked.side_effect = TransientCollaboratorError("db down")

        result = _route(router)

        assert result.action == RouteAction.RESPONDER

    def test_pause_lookup_failure_is_treated_as_not_paused(self, router, handoff):
        handoff.is_paused.side_effect = TransientCollaboratorError("pause store down")

        result = _route(router)

        assert result.action == RouteAction.RESPONDER

    @pytest.mark.parametrize("collaborator", ["blocklist", "handoff"])
    def test_unexpected_guard_error_propagates(self, router, blocklist, handoff, responder, collaborator):
        if collaborator == "blocklist":
            blocklist.is_blocked.side_effect = RuntimeError("broken")
        else:
            handoff.is_paused.side_effect = RuntimeError("broken")

        with pytest.raises(RuntimeError):
            _route(router)
        responder.respond.assert_not_called()
