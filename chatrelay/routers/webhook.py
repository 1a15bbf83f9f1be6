"""Inbound WhatsApp events: debounce, route, reply."""

from fastapi import APIRouter, Depends, Request
from starlette.requests import ClientDisconnect

from chatrelay.config import settings
from chatrelay.errors import DeliveryError
from chatrelay.logging_config import get_logger
from chatrelay.runtime import Runtime, get_runtime
from chatrelay.schemas.webhook import WebhookBody, WebhookMetadata, WebhookRequest, WebhookResponse
from chatrelay.services import chatflow_service
from chatrelay.services.message_buffer import BufferSignal
from chatrelay.services.phone import normalize_phone, to_jid
from chatrelay.services.transcription_service import MSG_TRANSCRIPTION_FAILED, transcribe_voice_note

logger = get_logger("webhook")

router = APIRouter()

VOICE_MESSAGE_TYPES = {"audio", "voice", "ptt", "voice_note"}


def _normalize_chatflow_payload(payload: dict) -> dict:
    """Accept both the nested ChatFlow shape and flat provider payloads."""
    body = payload.get("body")
    if not isinstance(body, dict):
        body = payload
    body = dict(body)
    metadata = dict(body.get("metadata")) if isinstance(body.get("metadata"), dict) else {}

    remote_jid = metadata.get("remoteJid")
    if not remote_jid:
        for key in ("remoteJid", "remote_jid", "jid", "from", "chatId", "phone"):
            remote_jid = payload.get(key)
            if remote_jid:
                break
    remote_jid = to_jid(remote_jid)
    if remote_jid:
        metadata["remoteJid"] = remote_jid

    if not metadata.get("messageId"):
        for key in ("messageId", "message_id", "id"):
            if payload.get(key):
                metadata["messageId"] = str(payload[key])
                break

    if not metadata.get("sender"):
        for key in ("sender", "pushName", "name"):
            if payload.get(key):
                metadata["sender"] = payload[key]
                break

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        message = None
        for key in ("text", "body", "content"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                message = value
                break
    body["message"] = message

    if not body.get("messageType") and payload.get("type"):
        body["messageType"] = payload["type"]

    body["metadata"] = metadata
    return body


async def _parse_webhook_request(request: Request) -> WebhookRequest | WebhookResponse:
    try:
        payload = await request.json()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during read")
        return WebhookResponse(success=True, message="Client disconnected")
    except ValueError as exc:
        raw = await request.body()
        if not raw or not raw.strip():
            return WebhookResponse(success=True, message="Empty payload")
        logger.warning(
            "Webhook payload is not valid JSON",
            extra={"context": {"error": str(exc), "body_preview": raw[:200].decode("utf-8", "ignore")}},
        )
        return WebhookResponse(success=False, message="Invalid JSON payload")

    if not isinstance(payload, dict):
        return WebhookResponse(success=False, message="Invalid payload format")

    try:
        return WebhookRequest(body=WebhookBody.model_validate(_normalize_chatflow_payload(payload)))
    except ValueError as exc:
        logger.warning("Webhook payload validation failed", extra={"context": {"error": str(exc)}})
        return WebhookResponse(success=False, message="Invalid webhook payload")


def _is_voice_note(body: WebhookBody) -> bool:
    kind = (body.messageType or "").strip().lower()
    return kind in VOICE_MESSAGE_TYPES


async def _route_turn(runtime: Runtime, phone: str, text: str, fragments: int) -> WebhookResponse:
    try:
        result = await runtime.router.route(phone, text)
    except Exception as exc:
        logger.error("Turn routing failed", extra={"context": {"phone": phone, "error": str(exc)}}, exc_info=True)
        return WebhookResponse(success=False, message="Routing failed", fragments=fragments)

    if result.reply and not result.delivered:
        try:
            await chatflow_service.deliver(phone, result.reply, result.media_url)
        except DeliveryError as exc:
            logger.error("Reply not delivered", extra={"context": {"phone": phone, "error": str(exc)}})
            return WebhookResponse(
                success=False,
                message="Reply not delivered",
                action=result.action.value,
                bot_response=result.reply,
                fragments=fragments,
            )

    return WebhookResponse(
        success=True,
        message="Processed",
        action=result.action.value,
        bot_response=result.reply,
        fragments=fragments,
    )


async def handle_inbound(payload: WebhookRequest, runtime: Runtime) -> WebhookResponse:
    body = payload.body
    metadata = body.metadata or WebhookMetadata()
    phone = normalize_phone(metadata.remoteJid)
    if not phone:
        logger.info("Webhook payload without sender", extra={"context": {"message_id": metadata.messageId}})
        return WebhookResponse(success=False, message="Missing sender")

    if _is_voice_note(body):
        logger.info("Voice note received", extra={"context": {"phone": phone}})
        transcript = await transcribe_voice_note(
            runtime.llm,
            body.mediaUrl or "",
            mime_type=body.mimeType,
            max_bytes=int(settings.voice_note_max_mb * 1024 * 1024),
        )
        if not transcript:
            try:
                await chatflow_service.deliver(phone, MSG_TRANSCRIPTION_FAILED)
            except DeliveryError as exc:
                logger.error("Transcription notice not delivered", extra={"context": {"phone": phone, "error": str(exc)}})
            return WebhookResponse(success=True, message="Voice note not transcribed", action="transcription_failed")
        return await _route_turn(runtime, phone, transcript, fragments=1)

    text = (body.message or "").strip()
    if not text:
        return WebhookResponse(success=True, message="Empty message")

    outcome = await runtime.buffer.submit(phone, text, context=metadata.model_dump())
    if outcome is BufferSignal.SUPERSEDED:
        return WebhookResponse(success=True, message="Buffered")
    return await _route_turn(runtime, phone, outcome.combined_text, outcome.fragment_count)


@router.post("/webhook", response_model=WebhookResponse)
async def handle_webhook(request: Request, runtime: Runtime = Depends(get_runtime)):
    parsed = await _parse_webhook_request(request)
    if isinstance(parsed, WebhookResponse):
        return parsed
    return await handle_inbound(parsed, runtime)
