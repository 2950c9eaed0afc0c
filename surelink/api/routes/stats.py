from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger

from surelink.core.config import ADMIN_SECRET
from surelink.core.errors import PersistenceFailure
from surelink.schemas.realtime import CleanupRequest
from surelink.services.chat_service import ChatService

router = APIRouter()


def get_chat_service() -> ChatService:
    return ChatService()


@router.get("/stats")
def stats(chat: ChatService = Depends(get_chat_service)):
    try:
        messages = chat.get_statistics()
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="Failed to get statistics")

    return {
        "messages": messages,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/socket-stats")
def socket_stats(request: Request, chat: ChatService = Depends(get_chat_service)):
    coordinator = request.app.state.coordinator
    out = coordinator.statistics()
    try:
        out["chat"] = chat.get_statistics()
    except PersistenceFailure:
        logger.warning("Socket stats served without chat statistics")
        out["chat"] = {"total": 0, "today": 0, "week": 0}
    return out


@router.post("/cleanup")
def cleanup(payload: CleanupRequest, chat: ChatService = Depends(get_chat_service)):
    if not ADMIN_SECRET or payload.secret != ADMIN_SECRET:
        raise HTTPException(status_code=403, detail="Unauthorized")

    try:
        count = chat.delete_old_messages(payload.days)
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="Cleanup failed")

    logger.info(f"Manual cleanup: deleted {count} old messages")
    return {
        "success": True,
        "deleted": count,
        "message": f"{count}件の古いメッセージを削除しました",
    }
