"""Store layer for chats and their embedded message logs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from anchor_agent.db.client import SupabaseClient, get_supabase_client
from anchor_agent.db.models import ChatMessage, ChatRow, PersonaRow
from anchor_agent.db.persona_store import PersonaStore, get_persona_store

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChatStore:
    """Append-only access to the chats table.

    Each turn adds exactly one user message and one assistant message. A chat
    that does not exist yet is created with the caller's id, seeded with the
    turn. Two concurrent turns for the same chat race on read-then-append and
    the later write wins.
    """

    def __init__(self, db: SupabaseClient, personas: PersonaStore) -> None:
        self.db = db
        self.personas = personas

    def _join_persona(self, row: dict[str, Any]) -> ChatRow:
        chat = ChatRow(**row)
        chat.persona = self.personas.get_persona_by_id(chat.persona_id)
        return chat

    def _find(self, owner: str, chat_id: str) -> dict[str, Any] | None:
        rows = self.db.select("chats", filters={"id": chat_id, "user_id": owner}, limit=1)
        return rows[0] if rows else None

    def get_chat(self, owner: str, chat_id: str) -> ChatRow | None:
        """One chat with its persona joined, or None."""
        row = self._find(owner, chat_id)
        if row is None:
            return None
        return self._join_persona(row)

    def get_chat_history(self, owner: str, chat_id: str | None) -> list[dict[str, Any]]:
        """Raw message list for context building; empty when absent or unreadable."""
        if not chat_id:
            return []
        try:
            row = self._find(owner, chat_id)
        except Exception as e:
            logger.warning("chat.history_failed", chat_id=chat_id, error=str(e))
            return []
        if row is None:
            return []
        return list(row.get("messages") or [])

    def get_chat_persona(self, owner: str, chat_id: str | None) -> PersonaRow | None:
        if not chat_id:
            return None
        chat = self.get_chat(owner, chat_id)
        return chat.persona if chat else None

    def list_chats(self, owner: str) -> list[ChatRow]:
        """Chats for an owner, newest first, personas joined."""
        rows = self.db.select(
            "chats",
            filters={"user_id": owner},
            order_by="created_at",
            ascending=False,
        )
        return [self._join_persona(row) for row in rows]

    def save_turn(
        self,
        owner: str,
        chat_id: str,
        user_text: str,
        reply_text: str,
        persona: PersonaRow,
        audio_ref: str | None = None,
        user_audio_ref: str | None = None,
        video_ref: str | None = None,
    ) -> ChatRow:
        """Append one user and one assistant message, creating the chat if needed."""
        timestamp = _now()
        user_message = ChatMessage(
            role="user",
            content=user_text,
            timestamp=timestamp,
            audio_url=user_audio_ref,
        )
        assistant_message = ChatMessage(
            role="assistant",
            content=reply_text,
            timestamp=timestamp,
            persona=persona.name,
            persona_id=persona.id,
            audio_url=audio_ref,
            video_url=video_ref,
        )
        new_messages = [user_message.to_record(), assistant_message.to_record()]

        existing = self._find(owner, chat_id)
        if existing is not None:
            messages = list(existing.get("messages") or []) + new_messages
            rows = self.db.update_where(
                "chats",
                {"id": chat_id, "user_id": owner},
                {"messages": messages, "updated_at": _now()},
            )
            logger.info("chat.turn_appended", chat_id=chat_id, message_count=len(messages))
            return self._join_persona(rows[0] if rows else {**existing, "messages": messages})

        row = self.db.insert(
            "chats",
            {
                "id": chat_id,
                "user_id": owner,
                "persona_id": persona.id,
                "title": f"Chat with {persona.name}",
                "messages": new_messages,
            },
        )
        logger.info("chat.created", chat_id=chat_id, persona=persona.name)
        return self._join_persona(row)

    def delete_chat(self, owner: str, chat_id: str) -> bool:
        """Delete a chat owned by `owner`. Returns whether a row was removed."""
        deleted = self.db.delete_where("chats", {"id": chat_id, "user_id": owner})
        logger.info("chat.deleted", chat_id=chat_id, found=bool(deleted))
        return bool(deleted)


def get_chat_store() -> ChatStore:
    """Get ChatStore instance."""
    return ChatStore(get_supabase_client(), get_persona_store())
