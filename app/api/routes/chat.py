"""Conversational assistant endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from app.api.errors import http_error
from app.services.chat import ChatService, ConversationStore, get_conversation_store
from app.services.screening.errors import PipelineError

router = APIRouter()
logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    session_id: str = Field(default=DEFAULT_SESSION, alias="sessionId", min_length=1)


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    session_id: str = Field(alias="sessionId")


def get_chat_service(store: ConversationStore = Depends(get_conversation_store)) -> ChatService:
    return ChatService(store)


@router.get("/chat")
async def chat_status(service: ChatService = Depends(get_chat_service)):
    return service.status()


@router.post("/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest, service: ChatService = Depends(get_chat_service)) -> ChatResponse:
    try:
        answer = await service.reply(payload.session_id, payload.message)
    except PipelineError as exc:
        raise http_error(exc, event="chat.api_error", session_id=payload.session_id) from exc
    return ChatResponse(response=answer, session_id=payload.session_id)


@router.post("/chat/stream")
async def chat_stream(payload: ChatRequest, service: ChatService = Depends(get_chat_service)):
    """Stream the reply as plain-text fragments."""
    try:
        service.ensure_client()
    except PipelineError as exc:
        raise http_error(exc, event="chat.stream_error", session_id=payload.session_id) from exc
    return StreamingResponse(
        service.stream_reply(payload.session_id, payload.message),
        media_type="text/plain; charset=utf-8",
    )


@router.delete("/chat")
async def reset_chat(
    session_id: str = Query(DEFAULT_SESSION, alias="sessionId"),
    service: ChatService = Depends(get_chat_service),
):
    return {"success": True, "cleared": service.reset(session_id)}
