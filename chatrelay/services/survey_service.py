"""Ordered-question surveys run inside the chat."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from chatrelay.errors import MalformedInputError, TransientCollaboratorError
from chatrelay.logging_config import get_logger
from chatrelay.services.phone import normalize_phone
from chatrelay.services.survey_store import SurveyResultStore, SurveySubmission

logger = get_logger("survey_service")

DEFAULT_KEYWORD = "encuesta"
DEFAULT_WELCOME_MESSAGE = "📋 ¡Hola! Vamos a hacerte unas preguntas rápidas."
DEFAULT_THANK_YOU_MESSAGE = "✅ ¡Gracias por tus respuestas! Han sido guardadas."
MSG_NO_QUESTIONS = "No hay preguntas configuradas en este momento."


class SurveyState(str, Enum):
    NOT_STARTED = "not_started"
    AWAITING_ANSWER = "awaiting_answer"
    COMPLETED = "completed"


VALID_TRANSITIONS = {
    SurveyState.NOT_STARTED: [SurveyState.AWAITING_ANSWER],
    SurveyState.AWAITING_ANSWER: [SurveyState.AWAITING_ANSWER, SurveyState.COMPLETED],
    SurveyState.COMPLETED: [],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: SurveyState, to_state: SurveyState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def can_transition(from_state: SurveyState, to_state: SurveyState) -> bool:
    return to_state in VALID_TRANSITIONS.get(from_state, [])


def transition(from_state: SurveyState, to_state: SurveyState) -> SurveyState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


@dataclass
class SurveyConfig:
    keyword: str = DEFAULT_KEYWORD
    welcome_message: str = DEFAULT_WELCOME_MESSAGE
    thank_you_message: str = DEFAULT_THANK_YOU_MESSAGE
    is_active: bool = True


@dataclass
class SurveySession:
    key: str
    questions: tuple[str, ...]
    started_at: datetime
    step_index: int = 0
    answers: list[str] = field(default_factory=list)
    state: SurveyState = SurveyState.NOT_STARTED

    @property
    def total(self) -> int:
        return len(self.questions)


@dataclass
class SurveyReply:
    message: str
    is_complete: bool


def format_question(index: int, questions: tuple[str, ...]) -> str:
    return f"*Pregunta {index + 1}/{len(questions)}:*\n{questions[index]}"


def _coerce_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "si", "sí", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SurveyService:
    def __init__(
        self,
        results_store: SurveyResultStore,
        load_questions: Callable[[], list[str]],
        config: Optional[SurveyConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._results_store = results_store
        self._load_questions = load_questions
        self.config = config or SurveyConfig()
        self._clock = clock
        self._sessions: dict[str, SurveySession] = {}
        self.questions: list[str] = []

    def apply_config(self, values: dict) -> None:
        if values.get("keyword"):
            self.config.keyword = str(values["keyword"]).strip().lower()
        if values.get("welcome_message"):
            self.config.welcome_message = values["welcome_message"]
        if values.get("thank_you_message"):
            self.config.thank_you_message = values["thank_you_message"]
        if "is_active" in values:
            self.config.is_active = _coerce_bool(values["is_active"], self.config.is_active)

    def refresh_questions(self) -> list[str]:
        """Reload the live question list; a lookup failure keeps the previous one."""
        try:
            self.questions = list(self._load_questions())
        except TransientCollaboratorError as exc:
            logger.error("Survey questions unavailable", extra={"context": {"error": str(exc)}})
        return self.questions

    def is_keyword_trigger(self, text: str) -> bool:
        if not self.config.is_active:
            return False
        return (text or "").strip().lower() == self.config.keyword

    def has_active_survey(self, phone: str) -> bool:
        return normalize_phone(phone) in self._sessions

    def get_session(self, phone: str) -> Optional[SurveySession]:
        return self._sessions.get(normalize_phone(phone))

    def _snapshot_questions(self) -> tuple[str, ...]:
        questions = tuple(self.refresh_questions())
        if not questions:
            raise MalformedInputError("no survey questions configured")
        return questions

    def start(self, phone: str) -> str:
        """Open a session on a snapshot of the current questions; returns welcome + first question."""
        key = normalize_phone(phone)
        try:
            questions = self._snapshot_questions()
        except MalformedInputError:
            logger.warning("Survey requested but no questions are configured", extra={"context": {"phone": key}})
            return MSG_NO_QUESTIONS

        session = SurveySession(key=key, questions=questions, started_at=self._clock())
        session.state = transition(session.state, SurveyState.AWAITING_ANSWER)
        self._sessions[key] = session
        logger.info("Survey started", extra={"context": {"phone": key, "questions": session.total}})
        return f"{self.config.welcome_message}\n\n{format_question(0, questions)}"

    def answer(self, phone: str, text: str) -> SurveyReply:
        key = normalize_phone(phone)
        session = self._sessions.get(key)
        if session is None:
            return SurveyReply(message="", is_complete=True)

        session.answers.append(text)
        session.step_index += 1

        if session.step_index < session.total:
            session.state = transition(session.state, SurveyState.AWAITING_ANSWER)
            return SurveyReply(message=format_question(session.step_index, session.questions), is_complete=False)

        session.state = transition(session.state, SurveyState.COMPLETED)
        self._persist(session)
        del self._sessions[key]
        logger.info("Survey completed", extra={"context": {"phone": key}})
        return SurveyReply(message=self.config.thank_you_message, is_complete=True)

    def _persist(self, session: SurveySession) -> None:
        submission = SurveySubmission(
            phone=session.key,
            submitted_at=self._clock(),
            questions=list(session.questions),
            answers=list(session.answers),
        )
        try:
            self._results_store.append(submission)
        except TransientCollaboratorError as exc:
            logger.error(
                "Survey answers could not be stored",
                extra={"context": {"phone": session.key, "answers": submission.answers, "error": str(exc)}},
            )

    def cancel(self, phone: str) -> bool:
        key = normalize_phone(phone)
        if self._sessions.pop(key, None) is None:
            return False
        logger.info("Survey cancelled", extra={"context": {"phone": key}})
        return True

    def stats(self) -> dict:
        return {
            "active_surveys": len(self._sessions),
            "questions_configured": len(self.questions),
            "keyword": self.config.keyword,
            "is_active": self.config.is_active,
        }
