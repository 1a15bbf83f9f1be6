"""Configuration store: key/value sections, survey questions and keyword flows."""

import time
from typing import Any, Callable

from chatrelay.database import session_scope
from chatrelay.logging_config import get_logger
from chatrelay.models import BotSetting, KeywordFlow, SurveyQuestion

logger = get_logger("settings_service")


class SettingsService:
    def __init__(self, session_factory=None, ttl_seconds: float = 300.0, clock=time.monotonic):
        self._session_factory = session_factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, Any]] = {}

    def invalidate(self) -> None:
        self._cache.clear()
        logger.info("Settings cache invalidated")

    def _cached(self, name: str, loader: Callable[[], Any]) -> Any:
        entry = self._cache.get(name)
        now = self._clock()
        if entry and (now - entry[0]) < self._ttl_seconds:
            return entry[1]
        value = loader()
        self._cache[name] = (now, value)
        return value

    def _load_section(self, section: str) -> dict[str, str]:
        with session_scope(self._session_factory) as db:
            rows = db.query(BotSetting).filter(BotSetting.section == section).all()
            return {row.key: row.value for row in rows if row.value is not None and str(row.value).strip()}

    def get_section(self, section: str) -> dict[str, str]:
        return self._cached(f"section:{section}", lambda: self._load_section(section))

    def get_handoff_config(self) -> dict[str, str]:
        return self.get_section("handoff")

    def get_survey_config(self) -> dict[str, str]:
        return self.get_section("survey")

    def get_responder_config(self) -> dict[str, str]:
        return self.get_section("responder")

    def _load_survey_questions(self) -> list[str]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(SurveyQuestion)
                .filter(SurveyQuestion.is_active.is_(True))
                .order_by(SurveyQuestion.position, SurveyQuestion.id)
                .all()
            )
            return [row.text.strip() for row in rows if row.text and row.text.strip()]

    def get_survey_questions(self) -> list[str]:
        return self._cached("survey_questions", self._load_survey_questions)

    def _load_keyword_flows(self) -> list[dict]:
        with session_scope(self._session_factory) as db:
            rows = db.query(KeywordFlow).order_by(KeywordFlow.position, KeywordFlow.id).all()
            return [
                {"keyword": row.keyword, "answer": row.answer or "", "media_url": row.media_url or ""}
                for row in rows
                if row.keyword and row.keyword.strip()
            ]

    def get_keyword_flows(self) -> list[dict]:
        return self._cached("keyword_flows", self._load_keyword_flows)
