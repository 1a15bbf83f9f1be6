from fastapi import APIRouter, Depends

from chatrelay.routers.admin import require_admin_token
from chatrelay.runtime import Runtime, get_runtime
from chatrelay.schemas.admin import PausedChat, PausedChatsResponse, PhoneRequest, StatusResponse

router = APIRouter(prefix="/v1/handoff", tags=["handoff"], dependencies=[Depends(require_admin_token)])


@router.post("/resume", response_model=StatusResponse)
def resume_chat(request: PhoneRequest, runtime: Runtime = Depends(get_runtime)):
    """Hand the conversation back to the bot."""
    resumed = runtime.handoff.resume(request.number)
    if resumed:
        return StatusResponse(status="ok", message=f"Chat {request.number} resumed")
    return StatusResponse(status="not_found", message="Chat was not paused")


@router.get("/paused", response_model=PausedChatsResponse)
def list_paused(runtime: Runtime = Depends(get_runtime)):
    chats = [
        PausedChat(
            phone=record.key,
            paused_at=record.paused_at,
            expires_at=record.expires_at,
            remaining_minutes=runtime.handoff.remaining_minutes(record),
            reason=record.reason,
        )
        for record in runtime.handoff.list_active()
    ]
    return PausedChatsResponse(count=len(chats), chats=chats)
