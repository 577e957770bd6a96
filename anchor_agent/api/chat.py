"""Chat turn endpoints: typed and spoken messages."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from anchor_agent.api.models import AudioChatRequest, ChatTurnResponse, TextChatRequest
from anchor_agent.core.orchestrator import ChatOrchestrator, TurnRequest, get_orchestrator
from anchor_agent.utils.logging import bind_request_context

logger = structlog.get_logger()

router = APIRouter()


def _turn_request(data: TextChatRequest) -> TurnRequest:
    return TurnRequest(
        owner=data.uid,
        message=data.message,
        persona_id=data.persona_id,
        persona_name=data.persona_name,
        chat_id=data.chat_id,
        locations=list(data.locations),
        video_enabled=data.video_enabled,
    )


@router.post("/text", response_model=ChatTurnResponse, response_model_by_alias=True)
async def chat_text(
    data: TextChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatTurnResponse:
    """Answer a typed message in the persona's voice."""
    bind_request_context(user_id=data.uid, chat_id=data.chat_id)
    logger.info(
        "chat.text_received",
        length=len(data.message),
        persona_id=data.persona_id,
        persona_name=data.persona_name,
        locations=data.locations,
        video=data.video_enabled,
    )
    result = await orchestrator.run_turn(_turn_request(data))
    return ChatTurnResponse(**result.to_response())


@router.post("/audio", response_model=ChatTurnResponse, response_model_by_alias=True)
async def chat_audio(
    data: AudioChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatTurnResponse:
    """Transcribe a spoken message, then answer it."""
    bind_request_context(user_id=data.uid, chat_id=data.chat_id)
    logger.info("chat.audio_received", size=len(data.message), mime_type=data.mime_type)
    result = await orchestrator.run_audio_turn(_turn_request(data), data.message, data.mime_type)
    return ChatTurnResponse(**result.to_response())
