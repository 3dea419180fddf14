from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from chainchat.api.deps import get_chat_handler
from chainchat.errors import ChatError
from chainchat.models.schemas import ChatRequest
from chainchat.services import logger as log_service
from chainchat.services.chat_handler import ChatHandler

router = APIRouter(prefix="/api/ai-chat", tags=["chat"])


@router.post("")
async def chat(request: ChatRequest, handler: ChatHandler = Depends(get_chat_handler)):
    """Run a single-model or chained chat turn, or list/load conversations."""
    try:
        return await handler.handle(request)
    except ChatError:
        raise
    except Exception as e:
        log_service.log_event(
            event_type="chat_error",
            message="Unhandled error in chat route",
            error=str(e),
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(e) or type(e).__name__},
        )
