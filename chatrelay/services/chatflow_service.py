"""Outbound WhatsApp delivery through the ChatFlow HTTP API."""

from typing import Awaitable, Callable, Optional

import httpx

from chatrelay.config import settings
from chatrelay.errors import DeliveryError
from chatrelay.logging_config import get_logger
from chatrelay.services.alert_service import alert_critical
from chatrelay.services.phone import to_jid

logger = get_logger("chatflow_service")

SEND_TIMEOUT_SECONDS = 30.0

# Signature of deliver(): (recipient, body, media_url=None). Handoff sends text only.
Deliver = Callable[..., Awaitable[None]]


def _base_params(jid: str) -> dict:
    return {
        "token": settings.chatflow_token,
        "instance_id": settings.chatflow_instance_id,
        "jid": jid,
    }


async def send_whatsapp_message(jid: str, message: str) -> bool:
    params = {**_base_params(jid), "msg": message}
    async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS) as client:
        response = await client.get(settings.chatflow_api_url, params=params)
    logger.info(f"ChatFlow response: status={response.status_code}, jid={jid}, body={response.text[:200]}")
    return response.status_code == 200


async def send_whatsapp_image(jid: str, media_url: str, caption: Optional[str] = None) -> bool:
    # ChatFlow rejects image requests without a non-empty caption.
    params = {
        **_base_params(jid),
        "imageurl": media_url,
        "caption": caption.strip() if caption and caption.strip() else " ",
    }
    url = f"{settings.chatflow_media_base_url.rstrip('/')}/send-image"
    async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS) as client:
        response = await client.get(url, params=params)
    logger.info(f"ChatFlow media response: status={response.status_code}, jid={jid}, body={response.text[:200]}")
    if response.status_code != 200:
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    if not isinstance(payload, dict):
        return False
    return bool(payload.get("success"))


async def deliver(recipient: str, body: str, media_url: Optional[str] = None) -> None:
    """Deliver a message to a WhatsApp recipient. Raises DeliveryError on failure."""
    jid = to_jid(recipient)
    if not jid:
        raise DeliveryError(str(recipient), "invalid_recipient")
    if not settings.chatflow_token or not settings.chatflow_instance_id:
        logger.error("ChatFlow is not configured (CHATFLOW_TOKEN / CHATFLOW_INSTANCE_ID)")
        await alert_critical("WhatsApp send failed", {"jid": jid, "error": "missing_chatflow_config"})
        raise DeliveryError(jid, "missing_chatflow_config")
    if not body and not media_url:
        raise DeliveryError(jid, "empty_message")

    try:
        if media_url and media_url.strip():
            ok = await send_whatsapp_image(jid, media_url.strip(), caption=body)
        else:
            ok = await send_whatsapp_message(jid, body)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error(f"Error sending WhatsApp message: {e}", extra={"context": {"jid": jid}})
        await alert_critical("WhatsApp send failed", {"jid": jid, "error": str(e)})
        raise DeliveryError(jid, str(e)) from e

    if not ok:
        raise DeliveryError(jid, "rejected_by_chatflow")
    logger.info(f"Delivered via ChatFlow: jid={jid}")
