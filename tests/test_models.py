"""Tests for Pydantic model validation."""

import pytest
from pydantic import ValidationError

from anchor_agent.api.models import AudioChatRequest, PersonaSummary, TextChatRequest
from anchor_agent.db.models import ChatMessage, PersonaRow


class TestChatMessage:
    def test_assistant_requires_attribution(self):
        with pytest.raises(ValidationError):
            ChatMessage(role="assistant", content="Hi", timestamp="t")

    def test_user_rejects_attribution(self):
        with pytest.raises(ValidationError):
            ChatMessage(role="user", content="Hi", timestamp="t", persona="Alex", persona_id="p")

    def test_record_uses_camel_case(self):
        msg = ChatMessage(
            role="assistant",
            content="Hi",
            timestamp="t",
            persona="Alex",
            persona_id="p-alex",
            audio_url="u/c/a.pcm",
        )
        record = msg.to_record()
        assert record["personaId"] == "p-alex"
        assert record["audioUrl"] == "u/c/a.pcm"
        assert record["videoUrl"] is None

    def test_user_record_omits_persona_fields(self):
        record = ChatMessage(role="user", content="Hi", timestamp="t").to_record()
        assert set(record) == {"role", "content", "timestamp", "audioUrl"}

    def test_parses_stored_record(self):
        msg = ChatMessage(**{"role": "user", "content": "x", "timestamp": "t", "audioUrl": "k"})
        assert msg.audio_url == "k"


class TestTextChatRequest:
    def test_camel_case_fields(self):
        r = TextChatRequest(
            **{"message": "hi", "uid": "u1", "personaId": "p", "chatId": "c", "videoEnabled": True}
        )
        assert r.persona_id == "p"
        assert r.chat_id == "c"
        assert r.video_enabled is True
        assert r.locations == []

    def test_message_required(self):
        with pytest.raises(ValidationError):
            TextChatRequest(message="", uid="u1")

    def test_uid_required(self):
        with pytest.raises(ValidationError):
            TextChatRequest(message="hi")

    def test_audio_default_mime(self):
        assert AudioChatRequest(message="AAAA", uid="u1").mime_type == "audio/wav"


class TestPersonaSummary:
    def test_from_row(self):
        row = PersonaRow(id="p", name="Alex", voice_name="Kore", tone="calm")
        assert PersonaSummary.from_row(row).model_dump(by_alias=True) == {
            "id": "p",
            "name": "Alex",
            "voiceName": "Kore",
            "tone": None,
        }
        assert PersonaSummary.from_row(row, with_tone=True).tone == "calm"
        assert PersonaSummary.from_row(None) is None
