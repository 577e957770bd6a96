"""Generative AI client for persona replies, speech and transcription."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import structlog
from google import genai
from google.genai import types

from anchor_agent.config import get_settings
from anchor_agent.core.prompts import (
    TRANSCRIBE_PROMPT,
    build_dialogue_prompt,
    build_system_instruction,
    build_tts_prompt,
)
from anchor_agent.db.models import PersonaRow
from anchor_agent.utils.audio import PCM_CONTENT_TYPE

logger = structlog.get_logger()


@dataclass
class SpeechAudio:
    """Raw synthesized audio (16-bit PCM unless the MIME type says otherwise)."""

    data: bytes
    mime_type: str = PCM_CONTENT_TYPE


def _voice(voice_name: str) -> types.VoiceConfig:
    return types.VoiceConfig(
        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_name)
    )


def history_to_contents(history: list[dict[str, Any]]) -> list[types.Content]:
    """Stored chat messages as model turns: user stays user, everything else is model."""
    contents = []
    for message in history:
        text = message.get("content")
        if not text:
            continue
        role = "user" if message.get("role") == "user" else "model"
        contents.append(types.Content(role=role, parts=[types.Part(text=text)]))
    return contents


def _first_audio(response: Any) -> SpeechAudio:
    inline = response.candidates[0].content.parts[0].inline_data
    if inline is None or not inline.data:
        raise ValueError("speech response contained no audio")
    return SpeechAudio(data=inline.data, mime_type=inline.mime_type or PCM_CONTENT_TYPE)


class AIClient:
    """Thin async wrapper over google-genai. SDK errors propagate unchanged."""

    def __init__(
        self,
        client: genai.Client,
        chat_model: str,
        tts_model: str,
        dialogue_tts_model: str,
        stt_model: str,
    ) -> None:
        self.client = client
        self.chat_model = chat_model
        self.tts_model = tts_model
        self.dialogue_tts_model = dialogue_tts_model
        self.stt_model = stt_model

    async def generate_reply(
        self,
        user_text: str,
        persona: PersonaRow,
        history: list[dict[str, Any]] | None = None,
        context: str = "",
    ) -> str:
        """Persona reply to `user_text`; may contain bracketed expression tags."""
        system_instruction = build_system_instruction(persona, context)
        chat = self.client.aio.chats.create(
            model=self.chat_model,
            history=history_to_contents(history or []),
            config=types.GenerateContentConfig(system_instruction=system_instruction),
        )
        response = await chat.send_message(user_text)
        text = response.text or ""
        logger.info(
            "ai.reply_generated",
            persona=persona.name,
            history=len(history or []),
            with_context=bool(context),
            length=len(text),
        )
        return text

    async def synthesize_speech(self, text: str, persona: PersonaRow) -> SpeechAudio:
        response = await self.client.aio.models.generate_content(
            model=self.tts_model,
            contents=build_tts_prompt(text, persona),
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(voice_config=_voice(persona.voice_name)),
            ),
        )
        audio = _first_audio(response)
        logger.info("ai.speech_synthesized", voice=persona.voice_name, size=len(audio.data))
        return audio

    async def synthesize_dialogue(
        self,
        user_text: str,
        reply_text: str,
        user_persona: PersonaRow,
        assistant_persona: PersonaRow,
    ) -> SpeechAudio:
        """Two-speaker rendition of one exchange, each speaker with its own voice."""
        speakers = [
            types.SpeakerVoiceConfig(speaker=p.name, voice_config=_voice(p.voice_name))
            for p in (user_persona, assistant_persona)
        ]
        response = await self.client.aio.models.generate_content(
            model=self.dialogue_tts_model,
            contents=build_dialogue_prompt(user_text, reply_text, user_persona, assistant_persona),
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    multi_speaker_voice_config=types.MultiSpeakerVoiceConfig(
                        speaker_voice_configs=speakers
                    )
                ),
            ),
        )
        audio = _first_audio(response)
        logger.info("ai.dialogue_synthesized", speakers=[s.speaker for s in speakers])
        return audio

    async def transcribe(self, audio: bytes, mime_type: str = "audio/wav") -> str:
        response = await self.client.aio.models.generate_content(
            model=self.stt_model,
            contents=[types.Part.from_bytes(data=audio, mime_type=mime_type), TRANSCRIBE_PROMPT],
        )
        text = (response.text or "").strip()
        logger.info("ai.transcribed", mime_type=mime_type, length=len(text))
        return text


@lru_cache
def get_ai_client() -> AIClient:
    """Get cached AIClient instance."""
    settings = get_settings()
    return AIClient(
        genai.Client(api_key=settings.google_ai_api_key),
        chat_model=settings.chat_model,
        tts_model=settings.tts_model,
        dialogue_tts_model=settings.dialogue_tts_model,
        stt_model=settings.stt_model,
    )
