from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class WebhookMetadata(BaseModel):
    sender: Optional[str] = None
    timestamp: Optional[int] = None
    messageId: Optional[str] = None
    remoteJid: Optional[str] = None


class WebhookBody(BaseModel):
    messageType: Optional[str] = "text"
    message: Optional[str] = None
    metadata: Optional[WebhookMetadata] = None
    mediaUrl: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("mediaUrl", "media_url", "audioUrl", "url"),
    )
    mimeType: Optional[str] = Field(default=None, validation_alias=AliasChoices("mimeType", "mime_type", "mimetype"))
    mediaData: Optional[Any] = None


class WebhookRequest(BaseModel):
    body: WebhookBody


class WebhookResponse(BaseModel):
    success: bool
    message: str
    action: Optional[str] = None
    bot_response: Optional[str] = None
    fragments: Optional[int] = None
