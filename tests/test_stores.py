from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from chatrelay.database import session_scope
from chatrelay.errors import TransientCollaboratorError
from chatrelay.services.blocklist_service import BlocklistService
from chatrelay.services.settings_service import SettingsService
from chatrelay.services.survey_store import SurveyResultStore, SurveySubmission


class Ticker:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


class TestSessionScope:
    def test_commits_and_closes(self, session_factory, db_session):
        with session_scope(session_factory):
            pass
        db_session.commit.assert_called_once()
        db_session.close.assert_called_once()

    def test_database_error_becomes_transient(self, session_factory, db_session):
        with pytest.raises(TransientCollaboratorError):
            with session_scope(session_factory) as db:
                db.query.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
                db.query()
        db_session.rollback.assert_called_once()
        db_session.close.assert_called_once()

    def test_other_errors_propagate(self, session_factory, db_session):
        with pytest.raises(KeyError):
            with session_scope(session_factory):
                raise KeyError("x")
        db_session.rollback.assert_called_once()


class TestBlocklistService:
    def test_lookup_normalizes_numbers(self, session_factory, db_session):
        db_session.query.return_value.all.return_value = [SimpleNamespace(phone="+56 9 1111 1111", reason="spam")]
        blocklist = BlocklistService(session_factory)

        assert blocklist.is_blocked("56911111111@s.whatsapp.net") is True
        assert blocklist.is_blocked("56922222222") is False
        assert blocklist.list() == [{"phone": "56911111111", "reason": "spam"}]

    def test_reads_are_cached_until_ttl(self, session_factory, db_session):
        db_session.query.return_value.all.return_value = []
        ticker = Ticker()
        blocklist = BlocklistService(session_factory, ttl_seconds=60, clock=ticker)

        blocklist.is_blocked("1")
        blocklist.is_blocked("2")
        assert session_factory.call_count == 1

        ticker.value = 61
        blocklist.is_blocked("3")
        assert session_factory.call_count == 2

    def test_add_invalidates_cache(self, session_factory, db_session):
        db_session.query.return_value.all.return_value = []
        blocklist = BlocklistService(session_factory)
        blocklist.is_blocked("1")

        assert blocklist.add("+56 9 1111 1111", "spam") is True

        merged = db_session.merge.call_args[0][0]
        assert merged.phone == "56911111111"
        db_session.query.return_value.all.return_value = [merged]
        assert blocklist.is_blocked("56911111111") is True

    def test_remove_reports_missing_number(self, session_factory, db_session):
        db_session.query.return_value.filter.return_value.delete.return_value = 0
        assert BlocklistService(session_factory).remove("56911111111") is False

    def test_store_failure_surfaces_as_transient(self):
        db = Mock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(TransientCollaboratorError):
            BlocklistService(Mock(return_value=db)).is_blocked("569")


class TestSettingsService:
    def test_section_skips_blank_values(self, session_factory, db_session):
        db_session.query.return_value.filter.return_value.all.return_value = [
            SimpleNamespace(key="admin_phone", value="56900000000"),
            SimpleNamespace(key="customer_message", value="   "),
        ]

        assert SettingsService(session_factory).get_handoff_config() == {"admin_phone": "56900000000"}

    def test_invalidate_forces_reload(self, session_factory, db_session):
        db_session.query.return_value.filter.return_value.all.return_value = []
        service = SettingsService(session_factory)

        service.get_survey_config()
        service.get_survey_config()
        assert session_factory.call_count == 1

        service.invalidate()
        service.get_survey_config()
        assert session_factory.call_count == 2

    def test_survey_questions_are_stripped(self, session_factory, db_session):
        rows = [SimpleNamespace(text=" ¿Edad? "), SimpleNamespace(text=""), SimpleNamespace(text="¿Ciudad?")]
        db_session.query.return_value.filter.return_value.order_by.return_value.all.return_value = rows

        assert SettingsService(session_factory).get_survey_questions() == ["¿Edad?", "¿Ciudad?"]

    def test_keyword_flows(self, session_factory, db_session):
        rows = [
            SimpleNamespace(keyword="precio", answer="Desde $10.000", media_url=None),
            SimpleNamespace(keyword=" ", answer="x", media_url=None),
        ]
        db_session.query.return_value.order_by.return_value.all.return_value = rows

        flows = SettingsService(session_factory).get_keyword_flows()

        assert flows == [{"keyword": "precio", "answer": "Desde $10.000", "media_url": ""}]


class TestSurveyResultStore:
    def test_append_adds_response_row(self, session_factory, db_session, clock):
        submission = SurveySubmission(phone="569", submitted_at=clock(), questions=["q1"], answers=["a1"])

        SurveyResultStore(session_factory).append(submission)

        row = db_session.add.call_args[0][0]
        assert row.phone == "569"
        assert row.answers == [{"question": "q1", "answer": "a1"}]
        db_session.commit.assert_called_once()
