from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock

import pytest


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def db_session():
    """Mock database session."""
    return MagicMock()


@pytest.fixture
def session_factory(db_session):
    return Mock(return_value=db_session)


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
