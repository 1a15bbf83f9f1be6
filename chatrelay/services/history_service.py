"""Per-contact chat history used as context for generated replies."""

from datetime import datetime, timezone
from typing import List

from chatrelay.database import session_scope
from chatrelay.logging_config import get_logger
from chatrelay.models import ChatMessage
from chatrelay.services.phone import normalize_phone

logger = get_logger("history_service")

DEFAULT_CONTEXT_MESSAGES = 10
ROLES = ("user", "assistant")


class ChatHistoryStore:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def save_message(self, phone: str, role: str, content: str) -> None:
        key = normalize_phone(phone)
        text = (content or "").strip()
        if not key or not text or role not in ROLES:
            return
        with session_scope(self._session_factory) as db:
            db.add(ChatMessage(phone=key, role=role, content=text, created_at=datetime.now(timezone.utc)))

    def get_recent(self, phone: str, limit: int = DEFAULT_CONTEXT_MESSAGES) -> List[dict]:
        """Last `limit` messages for a contact, oldest first, shaped for the chat API."""
        key = normalize_phone(phone)
        if not key or limit <= 0:
            return []
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(ChatMessage)
                .filter(ChatMessage.phone == key)
                .order_by(ChatMessage.created_at.desc())
                .limit(limit)
                .all()
            )
            rows = list(reversed(rows))
            return [{"role": row.role, "content": row.content} for row in rows if row.role in ROLES]

    def delete(self, phone: str) -> int:
        key = normalize_phone(phone)
        if not key:
            return 0
        with session_scope(self._session_factory) as db:
            deleted = db.query(ChatMessage).filter(ChatMessage.phone == key).delete()
        if deleted:
            logger.info("Chat history deleted", extra={"context": {"phone": key, "messages": deleted}})
        return deleted
