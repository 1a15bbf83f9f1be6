"""Scheduled backlog store: pending outbound messages and their due dates."""

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy import func

from chatrelay.database import session_scope
from chatrelay.errors import MalformedInputError
from chatrelay.logging_config import get_logger
from chatrelay.models import ScheduledMessage

logger = get_logger("backlog_service")


class ScheduledStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class DueMessage:
    id: int
    recipient: str
    body: str
    media_url: Optional[str]
    due_at: datetime


def parse_due_at(raw, tz: tzinfo) -> datetime:
    """Parse a due date written as "DD/MM/YYYY HH:mm[:ss]" (or ISO 8601) in the local timezone."""
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=tz)
    text = str(raw or "").strip()
    if not text:
        raise MalformedInputError("empty due date")

    parts = text.split()
    if len(parts) == 2 and "/" in parts[0]:
        try:
            day, month, year = (int(p) for p in parts[0].split("/"))
            clock = [int(p) for p in parts[1].split(":")]
            if not 1 <= len(clock) <= 3:
                raise ValueError("bad time")
            hour, minute, second = (clock + [0, 0])[:3]
            return datetime(year, month, day, hour, minute, second, tzinfo=tz)
        except ValueError as exc:
            raise MalformedInputError(f"invalid due date {text!r}") from exc

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise MalformedInputError(f"invalid due date {text!r}") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def select_due(rows: Iterable, now: datetime, tz: tzinfo) -> list[DueMessage]:
    """Keep pending rows whose due date has passed; unparsable dates are logged and skipped."""
    due: list[DueMessage] = []
    for row in rows:
        if (row.status or "").strip().lower() != ScheduledStatus.PENDING.value:
            continue
        try:
            due_at = parse_due_at(row.due_at, tz)
        except MalformedInputError as exc:
            logger.warning(
                "Scheduled message has invalid due date",
                extra={"context": {"id": row.id, "phone": row.phone, "due_at": str(row.due_at), "error": str(exc)}},
            )
            continue
        if due_at <= now:
            due.append(
                DueMessage(
                    id=row.id,
                    recipient=row.phone,
                    body=row.body or "",
                    media_url=(row.media_url or "").strip() or None,
                    due_at=due_at,
                )
            )
    return due


class BacklogStore:
    def __init__(self, tz: tzinfo, session_factory=None):
        self._tz = tz
        self._session_factory = session_factory

    def list_due(self, now: datetime) -> list[DueMessage]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(ScheduledMessage)
                .filter(func.lower(ScheduledMessage.status) == ScheduledStatus.PENDING.value)
                .order_by(ScheduledMessage.id)
                .all()
            )
            return select_due(rows, now, self._tz)

    def update_status(self, message_id: int, status: ScheduledStatus, error: Optional[str] = None) -> None:
        with session_scope(self._session_factory) as db:
            db.query(ScheduledMessage).filter(ScheduledMessage.id == message_id).update(
                {
                    ScheduledMessage.status: status.value,
                    ScheduledMessage.last_error: error,
                    ScheduledMessage.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
