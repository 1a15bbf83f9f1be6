"""Decide which mode a coalesced turn belongs to and produce its reply.

Order: block list, active pause, handoff request, running survey, survey
keyword, responder chain. The first match wins.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from chatrelay.errors import TransientCollaboratorError
from chatrelay.logging_config import ConversationLogger, conversation_logger
from chatrelay.services.blocklist_service import BlocklistService
from chatrelay.services.handoff_service import HandoffService
from chatrelay.services.phone import normalize_phone
from chatrelay.services.responder_service import MSG_TECHNICAL_ERROR, ResponderService
from chatrelay.services.survey_service import SurveyService

LOGGER_NAME = "conversation_router"


class RouteAction(str, Enum):
    BLOCKED = "blocked"
    PAUSED = "paused"
    HANDOFF = "handoff"
    SURVEY_ANSWER = "survey_answer"
    SURVEY_STARTED = "survey_started"
    RESPONDER = "responder"
    RESPONDER_ERROR = "responder_error"


@dataclass
class RouteResult:
    action: RouteAction
    reply: Optional[str] = None
    media_url: Optional[str] = None
    # Replies already sent by the handling component; the caller must not resend.
    delivered: bool = False


class ConversationRouter:
    def __init__(
        self,
        blocklist: BlocklistService,
        handoff: HandoffService,
        survey: SurveyService,
        responder: ResponderService,
    ):
        self.blocklist = blocklist
        self.handoff = handoff
        self.survey = survey
        self.responder = responder

    def _is_blocked(self, key: str, log: ConversationLogger) -> bool:
        try:
            return self.blocklist.is_blocked(key)
        except TransientCollaboratorError as exc:
            log.warning("Block list lookup failed, treating as not blocked", context={"error": str(exc)})
            return False

    def _is_paused(self, key: str, log: ConversationLogger) -> bool:
        try:
            return self.handoff.is_paused(key)
        except TransientCollaboratorError as exc:
            log.warning("Pause lookup failed, treating as not paused", context={"error": str(exc)})
            return False

    async def route(self, phone: str, text: str) -> RouteResult:
        key = normalize_phone(phone)
        log = conversation_logger(LOGGER_NAME, key)

        if self._is_blocked(key, log):
            log.info("Number is blocked, ignoring turn")
            return RouteResult(action=RouteAction.BLOCKED)

        if self._is_paused(key, log):
            log.info("Chat paused (handoff active), ignoring turn")
            return RouteResult(action=RouteAction.PAUSED)

        if self.handoff.detect_intent(text):
            log.info("Handoff intent detected")
            await self.handoff.initiate_handoff(key, text)
            return RouteResult(
                action=RouteAction.HANDOFF,
                reply=self.handoff.config.customer_message,
                delivered=True,
            )

        if self.survey.has_active_survey(key):
            result = self.survey.answer(key, text)
            return RouteResult(action=RouteAction.SURVEY_ANSWER, reply=result.message or None)

        if self.survey.is_keyword_trigger(text):
            log.info("Survey keyword received")
            return RouteResult(action=RouteAction.SURVEY_STARTED, reply=self.survey.start(key))

        result = await self.responder.respond(text, key)
        if not result.ok:
            log.error("Responder failed", context={"error": result.error, "code": result.error_code})
            return RouteResult(action=RouteAction.RESPONDER_ERROR, reply=MSG_TECHNICAL_ERROR)
        return RouteResult(action=RouteAction.RESPONDER, reply=result.value.text, media_url=result.value.media_url)
