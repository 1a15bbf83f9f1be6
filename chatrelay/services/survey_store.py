from dataclasses import dataclass, field
from datetime import datetime

from chatrelay.database import session_scope
from chatrelay.logging_config import get_logger
from chatrelay.models import SurveyResponse

logger = get_logger("survey_store")


@dataclass
class SurveySubmission:
    phone: str
    submitted_at: datetime
    questions: list[str] = field(default_factory=list)
    answers: list[str] = field(default_factory=list)

    def aligned_answers(self) -> list[dict]:
        return [{"question": q, "answer": a} for q, a in zip(self.questions, self.answers)]


class SurveyResultStore:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def append(self, submission: SurveySubmission) -> None:
        with session_scope(self._session_factory) as db:
            db.add(
                SurveyResponse(
                    phone=submission.phone,
                    submitted_at=submission.submitted_at,
                    answers=submission.aligned_answers(),
                )
            )
        logger.info(
            "Survey response stored",
            extra={"context": {"phone": submission.phone, "answers": len(submission.answers)}},
        )
