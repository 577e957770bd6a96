"""Chat history endpoints."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException

from anchor_agent.api.models import ChatSummary, PersonaSummary
from anchor_agent.core.orchestrator import ChatOrchestrator, get_orchestrator
from anchor_agent.db.chat_store import ChatStore, get_chat_store
from anchor_agent.utils.text import clean_response_text

logger = structlog.get_logger()

router = APIRouter()


@router.get("/{uid}")
async def list_chats(uid: str, store: ChatStore = Depends(get_chat_store)) -> dict[str, Any]:
    """A user's chats, newest first, without message bodies."""
    chats = store.list_chats(uid)
    summaries = [
        ChatSummary(
            id=chat.id,
            title=chat.title or "Untitled Chat",
            created_at=chat.created_at,
            updated_at=chat.updated_at,
            message_count=len(chat.messages),
            persona=PersonaSummary.from_row(chat.persona),
        ).model_dump(mode="json", by_alias=True)
        for chat in chats
    ]
    logger.info("chats.listed", user_id=uid, count=len(summaries))
    return {"chats": summaries}


@router.get("/{uid}/{chat_id}")
async def get_chat(
    uid: str,
    chat_id: str,
    store: ChatStore = Depends(get_chat_store),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Full chat with display text and signed media URLs."""
    chat = store.get_chat(uid, chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")

    messages = [
        {**message, "content": clean_response_text(message.get("content"))}
        for message in chat.messages
    ]
    body = chat.model_dump(mode="json", exclude={"persona", "messages"})
    body["messages"] = await orchestrator.sign_messages(messages)
    persona = PersonaSummary.from_row(chat.persona, with_tone=True)
    body["persona"] = persona.model_dump(by_alias=True) if persona else None
    return {"chat": body}


@router.delete("/{uid}/{chat_id}")
async def delete_chat(
    uid: str, chat_id: str, store: ChatStore = Depends(get_chat_store)
) -> dict[str, Any]:
    store.delete_chat(uid, chat_id)
    return {"success": True, "message": "Chat deleted successfully"}
