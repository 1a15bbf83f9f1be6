"""JSON logging configuration for the chatrelay service."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """One JSON object per line. The conversation key is lifted to the top level so
    every component's records for one chat can be filtered with a single field."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            phone = context.get("phone")
            if phone:
                log_data["phone"] = phone
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"chatrelay.{name}")


class ConversationLogger(logging.LoggerAdapter):
    """Logger bound to one conversation: every record carries its phone key."""

    def __init__(self, logger: logging.Logger, phone: str, **fields: Any):
        super().__init__(logger, {"phone": phone, **fields})

    @property
    def phone(self) -> str:
        return self.extra["phone"]

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context: Optional[dict] = kwargs.pop("context", None)
        kwargs["extra"] = {"context": {**self.extra, **(context or {})}}
        return msg, kwargs


def conversation_logger(name: str, phone: str, **fields: Any) -> ConversationLogger:
    return ConversationLogger(get_logger(name), phone, **fields)
