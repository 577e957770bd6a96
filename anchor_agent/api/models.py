"""Pydantic request/response models for the API.

Field names follow the browser client's camelCase JSON.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from anchor_agent.db.models import PersonaRow, ProfileRow


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# --- Chat ---


class TextChatRequest(_CamelModel):
    """One typed chat turn."""

    message: str = Field(..., min_length=1)
    uid: str = Field(..., min_length=1)
    persona_id: str | None = Field(default=None, alias="personaId")
    persona_name: str | None = Field(default=None, alias="personaName")
    chat_id: str | None = Field(default=None, alias="chatId")
    locations: list[str] = Field(default_factory=list)
    video_enabled: bool = Field(default=False, alias="videoEnabled")


class AudioChatRequest(TextChatRequest):
    """One spoken chat turn; `message` is base64-encoded audio."""

    mime_type: str = Field(default="audio/wav", alias="mimeType")


class ChatTurnResponse(_CamelModel):
    transcribed_text: str = Field(alias="transcribedText")
    response_text: str = Field(alias="responseText")
    audio_url: str | None = Field(default=None, alias="audioUrl")
    user_audio_url: str | None = Field(default=None, alias="userAudioUrl")
    video_url: str | None = Field(default=None, alias="videoUrl")
    timestamp: str
    chat_id: str = Field(alias="chatId")
    is_multi_user_mode: bool = Field(default=False, alias="isMultiUserMode")


# --- Personas ---


class PersonaSummary(_CamelModel):
    id: str
    name: str
    voice_name: str = Field(alias="voiceName")
    tone: str | None = None

    @classmethod
    def from_row(cls, persona: PersonaRow | None, with_tone: bool = False) -> PersonaSummary | None:
        if persona is None:
            return None
        return cls(
            id=persona.id,
            name=persona.name,
            voice_name=persona.voice_name,
            tone=persona.tone if with_tone else None,
        )


class ChatSummary(BaseModel):
    """Entry of a user's chat list."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    message_count: int = Field(default=0, alias="messageCount")
    persona: PersonaSummary | None = None


# --- Profiles ---


class ProfileSaveRequest(_CamelModel):
    uid: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    email: str | None = None
    persona_id: str | None = Field(default=None, alias="personaId")


class ProfileResponse(_CamelModel):
    uid: str
    display_name: str | None = Field(default=None, alias="displayName")
    email: str
    persona_id: str | None = Field(default=None, alias="personaId")
    persona: PersonaSummary | None = None
    is_saved_to_supabase: bool = Field(default=True, alias="isSavedToSupabase")
    saved_at: datetime | None = Field(default=None, alias="savedAt")

    @classmethod
    def from_row(cls, profile: ProfileRow) -> ProfileResponse:
        return cls(
            uid=profile.user_id,
            display_name=profile.display_name,
            email=profile.email,
            persona_id=profile.persona_id,
            persona=PersonaSummary.from_row(profile.persona),
            is_saved_to_supabase=profile.is_saved_to_supabase,
            saved_at=profile.updated_at,
        )


class DeletedProfile(_CamelModel):
    uid: str
    display_name: str | None = Field(default=None, alias="displayName")
    email: str


class ProfileDeleteResponse(_CamelModel):
    success: bool = True
    message: str = "Profile deleted successfully"
    deleted_profile: DeletedProfile = Field(alias="deletedProfile")


# --- Media ---


class SignedUrlResponse(_CamelModel):
    signed_url: str = Field(alias="signedUrl")
