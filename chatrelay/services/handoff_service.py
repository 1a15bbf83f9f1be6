"""Human handoff: detect requests for a person, pause automation, notify the admin."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from chatrelay.errors import DeliveryError
from chatrelay.logging_config import get_logger
from chatrelay.services.chatflow_service import Deliver
from chatrelay.services.phone import normalize_phone

logger = get_logger("handoff_service")

DEFAULT_PAUSE_MINUTES = 30
DEFAULT_CUSTOMER_MESSAGE = (
    "⏳ En breve un asesor se comunicará contigo para darte atención personalizada. Por favor espera."
)
DEFAULT_ADMIN_MESSAGE = (
    "🚨 *SOLICITUD DE ATENCIÓN*\n\n📱 Cliente: {phone}\n💬 Mensaje: {message}\n\n"
    "_Responde directamente a este número._"
)
DEFAULT_HANDOFF_KEYWORDS = (
    "hablar con alguien",
    "persona real",
    "humano",
    "agente",
    "asesor",
    "vendedor",
    "atención personalizada",
    "hablar con una persona",
    "comunicarme con alguien",
    "quiero llamar",
    "pueden llamarme",
    "necesito ayuda humana",
    "operador",
    "representante",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HandoffConfig:
    admin_phone: str = ""
    pause_minutes: int = DEFAULT_PAUSE_MINUTES
    customer_message: str = DEFAULT_CUSTOMER_MESSAGE
    admin_message: str = DEFAULT_ADMIN_MESSAGE
    keywords: tuple[str, ...] = field(default_factory=lambda: DEFAULT_HANDOFF_KEYWORDS)


@dataclass
class PauseRecord:
    key: str
    paused_at: datetime
    expires_at: datetime
    reason: str = ""


class HandoffService:
    def __init__(
        self,
        deliver: Deliver,
        config: Optional[HandoffConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._deliver = deliver
        self.config = config or HandoffConfig()
        self._clock = clock
        self._paused: dict[str, PauseRecord] = {}

    def apply_config(self, values: dict) -> None:
        """Overlay values read from the configuration store onto the current config."""
        if values.get("admin_phone"):
            self.config.admin_phone = normalize_phone(values["admin_phone"])
        if values.get("pause_minutes"):
            try:
                minutes = int(values["pause_minutes"])
            except (TypeError, ValueError):
                minutes = DEFAULT_PAUSE_MINUTES
            self.config.pause_minutes = minutes if minutes > 0 else DEFAULT_PAUSE_MINUTES
        if values.get("customer_message"):
            self.config.customer_message = values["customer_message"]
        if values.get("admin_message"):
            self.config.admin_message = values["admin_message"]
        if values.get("keywords"):
            keywords = tuple(k.strip().lower() for k in str(values["keywords"]).split(",") if k.strip())
            if keywords:
                self.config.keywords = keywords
        logger.info(
            "Handoff config loaded",
            extra={
                "context": {
                    "admin_configured": bool(self.config.admin_phone),
                    "pause_minutes": self.config.pause_minutes,
                }
            },
        )

    def detect_intent(self, text: str) -> bool:
        lowered = (text or "").lower()
        return any(keyword in lowered for keyword in self.config.keywords)

    def is_paused(self, phone: str) -> bool:
        key = normalize_phone(phone)
        record = self._paused.get(key)
        if record is None:
            return False
        if self._clock() > record.expires_at:
            del self._paused[key]
            logger.info("Pause expired", extra={"context": {"phone": key}})
            return False
        return True

    def pause(self, phone: str, reason: str = "") -> PauseRecord:
        key = normalize_phone(phone)
        now = self._clock()
        record = PauseRecord(
            key=key,
            paused_at=now,
            expires_at=now + timedelta(minutes=self.config.pause_minutes),
            reason=reason,
        )
        self._paused[key] = record
        logger.info(
            f"Chat paused for {self.config.pause_minutes} minutes",
            extra={"context": {"phone": key, "expires_at": record.expires_at.isoformat()}},
        )
        return record

    def resume(self, phone: str) -> bool:
        key = normalize_phone(phone)
        if self._paused.pop(key, None) is None:
            return False
        logger.info("Chat resumed", extra={"context": {"phone": key}})
        return True

    def list_active(self) -> list[PauseRecord]:
        now = self._clock()
        return [record for record in self._paused.values() if now <= record.expires_at]

    def remaining_minutes(self, record: PauseRecord) -> int:
        return max(0, round((record.expires_at - self._clock()).total_seconds() / 60))

    def format_admin_message(self, phone: str, message: str) -> str:
        return self.config.admin_message.replace("{phone}", phone).replace("{message}", message)

    async def initiate_handoff(self, phone: str, message: str) -> PauseRecord:
        """Pause the chat, acknowledge the customer and alert the admin.

        The pause is committed before any notification is attempted, so a
        transport failure never leaves the conversation unpaused.
        """
        record = self.pause(phone, reason=message)

        try:
            await self._deliver(record.key, self.config.customer_message)
        except DeliveryError as exc:
            logger.error("Handoff acknowledgement not delivered", extra={"context": {"phone": record.key, "error": str(exc)}})

        if not self.config.admin_phone:
            logger.warning("No admin configured for handoff notifications", extra={"context": {"phone": record.key}})
            return record

        try:
            await self._deliver(self.config.admin_phone, self.format_admin_message(record.key, message))
        except DeliveryError as exc:
            logger.error("Admin handoff notification failed", extra={"context": {"phone": record.key, "error": str(exc)}})

        return record

    def stats(self) -> dict:
        return {
            "paused_chats": len(self._paused),
            "admin_configured": bool(self.config.admin_phone),
            "pause_minutes": self.config.pause_minutes,
        }
