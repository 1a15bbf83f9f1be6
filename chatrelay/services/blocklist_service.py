import time
from datetime import datetime, timezone

from chatrelay.database import session_scope
from chatrelay.logging_config import get_logger
from chatrelay.models import BlockedNumber
from chatrelay.services.phone import normalize_phone

logger = get_logger("blocklist_service")


class BlocklistService:
    """Block list backed by the blocked_numbers table, with a TTL read cache."""

    def __init__(self, session_factory=None, ttl_seconds: float = 300.0, clock=time.monotonic):
        self._session_factory = session_factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cached: dict[str, str | None] | None = None
        self._cached_at: float | None = None

    def _is_cache_valid(self) -> bool:
        if self._cached is None or self._cached_at is None:
            return False
        return (self._clock() - self._cached_at) < self._ttl_seconds

    def invalidate(self) -> None:
        self._cached = None
        self._cached_at = None

    def _load(self) -> dict[str, str | None]:
        if self._is_cache_valid():
            return self._cached
        with session_scope(self._session_factory) as db:
            rows = db.query(BlockedNumber).all()
            entries = {normalize_phone(row.phone): row.reason for row in rows}
        self._cached = entries
        self._cached_at = self._clock()
        return entries

    def list(self) -> list[dict]:
        return [{"phone": phone, "reason": reason} for phone, reason in sorted(self._load().items())]

    def is_blocked(self, phone: str) -> bool:
        key = normalize_phone(phone)
        if not key:
            return False
        return key in self._load()

    def add(self, phone: str, reason: str = "Sin especificar") -> bool:
        key = normalize_phone(phone)
        if not key:
            return False
        with session_scope(self._session_factory) as db:
            db.merge(BlockedNumber(phone=key, reason=reason, created_at=datetime.now(timezone.utc)))
        self.invalidate()
        logger.info("Number blocked", extra={"context": {"phone": key, "reason": reason}})
        return True

    def remove(self, phone: str) -> bool:
        key = normalize_phone(phone)
        if not key:
            return False
        with session_scope(self._session_factory) as db:
            deleted = db.query(BlockedNumber).filter(BlockedNumber.phone == key).delete()
        self.invalidate()
        if deleted:
            logger.info("Number unblocked", extra={"context": {"phone": key}})
        return bool(deleted)
