# /app/tempo/api/v1/chat.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from tempo.api.v1.errors import to_http_exception
from tempo.core.auth.security import get_current_user
from tempo.core.chat.service import ChatReply, ChatService
from tempo.core.errors import TempoError
from tempo.core.llm.client import IntentParser
from tempo.core.users.models import User

router = APIRouter(
    prefix="/v1/chat",
    tags=["chat"],
    dependencies=[Depends(get_current_user)],
)
log = logging.getLogger(__name__)


# --- Request model ---
class ChatRequest(BaseModel):
    # Length and emptiness are checked by ChatService so they map to 400.
    message: Any = None
    context: Optional[Dict[str, Any]] = None
    permissions: Optional[Dict[str, Any]] = None


# --- Service factories ---
def get_intent_parser() -> IntentParser:
    return IntentParser()


def get_chat_service(parser: IntentParser = Depends(get_intent_parser)) -> ChatService:
    return ChatService(parser)


@router.post(
    "/message",
    response_model=ChatReply,
    response_model_by_alias=True,
    summary="Send a message to the calendar assistant",
    description="Greets, or extracts a calendar intent and describes it back.",
)
async def chat_message(
    payload: ChatRequest = Body(...),
    current_user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
) -> ChatReply:
    log.info("[API /chat] User '%s' request (%d chars)", current_user.external_id, len(str(payload.message or "")))
    try:
        reply = await chat.process_message(
            current_user, payload.message, context=payload.context, permissions=payload.permissions
        )
    except TempoError as e:
        raise to_http_exception(e) from e
    log.info("[API /chat] Reply for user '%s': type=%s", current_user.external_id, reply.type)
    return reply
