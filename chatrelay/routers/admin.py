"""Admin API: cache invalidation, stats, block list, manual sends, surveys."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from chatrelay.config import settings
from chatrelay.errors import DeliveryError, TransientCollaboratorError
from chatrelay.logging_config import get_logger
from chatrelay.runtime import Runtime, get_runtime
from chatrelay.schemas.admin import (
    BlacklistEntry,
    BlacklistRequest,
    BlacklistResponse,
    CacheInvalidateResponse,
    PhoneRequest,
    SendMessageRequest,
    StatusResponse,
)
from chatrelay.services import chatflow_service

logger = get_logger("admin")


def require_admin_token(x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="ADMIN_TOKEN not configured")
    if not x_admin_token or x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


router = APIRouter(prefix="/v1", tags=["admin"], dependencies=[Depends(require_admin_token)])


@router.post("/cache/invalidate", response_model=CacheInvalidateResponse)
def invalidate_cache(runtime: Runtime = Depends(get_runtime)):
    loaded = runtime.reload_configuration()
    return CacheInvalidateResponse(status="ok", message="Cache invalidated", loaded=loaded)


@router.get("/stats")
def get_stats(runtime: Runtime = Depends(get_runtime)):
    return {"status": "ok", **runtime.stats()}


@router.post("/blacklist", response_model=StatusResponse)
def update_blacklist(request: BlacklistRequest, runtime: Runtime = Depends(get_runtime)):
    try:
        if request.intent == "add":
            changed = runtime.blocklist.add(request.number, request.reason or "Agregado vía API")
            message = f"{request.number} added to blacklist"
        else:
            changed = runtime.blocklist.remove(request.number)
            message = f"{request.number} removed from blacklist" if changed else f"{request.number} was not blacklisted"
    except TransientCollaboratorError as exc:
        logger.error("Blacklist update failed", extra={"context": {"number": request.number, "error": str(exc)}})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Blacklist store unavailable")

    return StatusResponse(status="ok" if changed else "not_found", message=message)


@router.get("/blacklist/list", response_model=BlacklistResponse)
def list_blacklist(runtime: Runtime = Depends(get_runtime)):
    try:
        entries = runtime.blocklist.list()
    except TransientCollaboratorError as exc:
        logger.error("Blacklist read failed", extra={"context": {"error": str(exc)}})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Blacklist store unavailable")
    return BlacklistResponse(blacklist=[BlacklistEntry(**entry) for entry in entries])


@router.post("/messages", response_model=StatusResponse)
async def send_message(request: SendMessageRequest):
    try:
        await chatflow_service.deliver(request.number, request.message, request.media_url)
    except DeliveryError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Delivery failed: {exc.reason}")
    return StatusResponse(status="ok", message="sent")


@router.post("/surveys/cancel", response_model=StatusResponse)
def cancel_survey(request: PhoneRequest, runtime: Runtime = Depends(get_runtime)):
    cancelled = runtime.survey.cancel(request.number)
    return StatusResponse(
        status="ok" if cancelled else "not_found",
        message=f"Survey for {request.number} cancelled" if cancelled else "No active survey",
    )
