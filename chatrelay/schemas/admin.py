from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator


class PhoneRequest(BaseModel):
    number: str

    @field_validator("number")
    @classmethod
    def require_number(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("number is required")
        return value.strip()


class StatusResponse(BaseModel):
    status: str
    message: str


class PausedChat(BaseModel):
    phone: str
    paused_at: datetime
    expires_at: datetime
    remaining_minutes: int
    reason: str = ""


class PausedChatsResponse(BaseModel):
    status: str = "ok"
    count: int
    chats: list[PausedChat]


class BlacklistRequest(PhoneRequest):
    intent: Literal["add", "remove"]
    reason: Optional[str] = None


class BlacklistEntry(BaseModel):
    phone: str
    reason: Optional[str] = None


class BlacklistResponse(BaseModel):
    status: str = "ok"
    blacklist: list[BlacklistEntry]


class SendMessageRequest(PhoneRequest):
    message: str = ""
    media_url: Optional[str] = None


class CacheInvalidateResponse(StatusResponse):
    loaded: dict[str, bool]
