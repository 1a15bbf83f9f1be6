"""Process-wide wiring of the orchestration components."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from chatrelay.config import Settings, settings
from chatrelay.errors import TransientCollaboratorError
from chatrelay.logging_config import get_logger
from chatrelay.services import chatflow_service
from chatrelay.services.backlog_service import BacklogStore
from chatrelay.services.blocklist_service import BlocklistService
from chatrelay.services.conversation_router import ConversationRouter
from chatrelay.services.dispatch_service import DispatchConfig, ScheduledDispatcher
from chatrelay.services.handoff_service import HandoffConfig, HandoffService
from chatrelay.services.history_service import ChatHistoryStore
from chatrelay.services.llm import LLMProvider, OpenAIProvider
from chatrelay.services.message_buffer import MessageBuffer
from chatrelay.services.responder_service import ResponderService
from chatrelay.services.settings_service import SettingsService
from chatrelay.services.survey_service import SurveyConfig, SurveyService
from chatrelay.services.survey_store import SurveyResultStore

logger = get_logger("runtime")


@dataclass
class Runtime:
    settings_store: SettingsService
    blocklist: BlocklistService
    buffer: MessageBuffer
    handoff: HandoffService
    survey: SurveyService
    router: ConversationRouter
    dispatcher: ScheduledDispatcher
    llm: Optional[LLMProvider] = None

    def reload_configuration(self) -> dict:
        """Drop store caches and re-apply handoff, survey and buffer settings.

        Each section is loaded independently; a failing lookup keeps the
        values already in effect.
        """
        self.settings_store.invalidate()
        self.blocklist.invalidate()
        loaded = {}

        try:
            self.handoff.apply_config(self.settings_store.get_handoff_config())
            loaded["handoff"] = True
        except TransientCollaboratorError as exc:
            logger.error("Handoff config unavailable", extra={"context": {"error": str(exc)}})
            loaded["handoff"] = False

        try:
            self.survey.apply_config(self.settings_store.get_survey_config())
            loaded["survey"] = True
        except TransientCollaboratorError as exc:
            logger.error("Survey config unavailable", extra={"context": {"error": str(exc)}})
            loaded["survey"] = False
        self.survey.refresh_questions()

        try:
            responder = self.settings_store.get_responder_config()
            loaded["responder"] = True
        except TransientCollaboratorError as exc:
            logger.error("Responder config unavailable", extra={"context": {"error": str(exc)}})
            responder = {}
            loaded["responder"] = False
        buffer_ms = responder.get("buffer_ms")
        if buffer_ms:
            try:
                self.buffer.configure(wait_seconds=float(buffer_ms) / 1000.0)
            except ValueError:
                logger.warning("Ignoring invalid buffer_ms", extra={"context": {"buffer_ms": buffer_ms}})

        return loaded

    def stats(self) -> dict:
        return {
            "buffer": self.buffer.stats(),
            "handoff": self.handoff.stats(),
            "survey": self.survey.stats(),
            "scheduler": self.dispatcher.stats(),
        }


def build_runtime(config: Settings = settings, session_factory=None) -> Runtime:
    tz = ZoneInfo(config.timezone)
    settings_store = SettingsService(session_factory, ttl_seconds=config.settings_cache_ttl_seconds)
    blocklist = BlocklistService(session_factory, ttl_seconds=config.settings_cache_ttl_seconds)

    llm = None
    if config.openai_api_key:
        llm = OpenAIProvider(
            config.openai_api_key,
            default_model=config.openai_model,
            transcribe_model=config.openai_transcribe_model,
        )
    else:
        logger.warning("OPENAI_API_KEY not set: generative replies and voice notes are disabled")

    handoff = HandoffService(
        chatflow_service.deliver,
        config=HandoffConfig(pause_minutes=config.handoff_pause_minutes),
    )
    survey = SurveyService(
        SurveyResultStore(session_factory),
        settings_store.get_survey_questions,
        config=SurveyConfig(keyword=config.survey_keyword.strip().lower()),
    )
    router = ConversationRouter(
        blocklist=blocklist,
        handoff=handoff,
        survey=survey,
        responder=ResponderService(
            settings_store,
            llm,
            history=ChatHistoryStore(session_factory),
            history_limit=config.history_context_messages,
        ),
    )
    dispatcher = ScheduledDispatcher(
        BacklogStore(tz, session_factory),
        chatflow_service.deliver,
        tz,
        config=DispatchConfig(
            poll_interval_seconds=max(config.dispatch_poll_seconds, 1.0),
            min_delay_ms=config.dispatch_min_delay_ms,
            max_delay_ms=config.dispatch_max_delay_ms,
            max_daily_messages=config.dispatch_max_daily_messages,
            start_hour=config.dispatch_start_hour,
            end_hour=config.dispatch_end_hour,
        ),
    )
    return Runtime(
        settings_store=settings_store,
        blocklist=blocklist,
        buffer=MessageBuffer(config.debounce_wait_seconds, config.debounce_max_wait_seconds),
        handoff=handoff,
        survey=survey,
        router=router,
        dispatcher=dispatcher,
        llm=llm,
    )


@lru_cache
def get_runtime() -> Runtime:
    return build_runtime()
