"""Database models / type definitions.

These mirror the Supabase tables for type safety in Python code.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PersonaRow(BaseModel):
    """Row from the personas table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    voice_name: str
    description: str | None = None
    tone: str | None = None
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProfileRow(BaseModel):
    """Row from the profiles table."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    display_name: str | None = None
    email: str
    persona_id: str | None = None
    is_saved_to_supabase: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    persona: PersonaRow | None = None


class ChatMessage(BaseModel):
    """One entry of a chat's JSONB message list.

    Stored with camelCase keys because the frontend reads the column directly.
    Assistant messages always carry persona attribution; user messages never do.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    role: Literal["user", "assistant"]
    content: str
    timestamp: str
    audio_url: str | None = Field(default=None, alias="audioUrl")
    video_url: str | None = Field(default=None, alias="videoUrl")
    persona: str | None = None
    persona_id: str | None = Field(default=None, alias="personaId")

    @model_validator(mode="after")
    def _check_attribution(self) -> ChatMessage:
        if self.role == "assistant" and not (self.persona and self.persona_id):
            raise ValueError("assistant messages must carry persona name and id")
        if self.role == "user" and (self.persona or self.persona_id):
            raise ValueError("user messages must not carry persona attribution")
        return self

    def to_record(self) -> dict[str, Any]:
        """Serialise for the messages column."""
        record = self.model_dump(by_alias=True)
        if self.role == "user":
            for key in ("persona", "personaId", "videoUrl"):
                record.pop(key, None)
        return record


class ChatRow(BaseModel):
    """Row from the chats table, optionally with its persona joined."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    persona_id: str | None = None
    title: str | None = None
    messages: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    persona: PersonaRow | None = None
