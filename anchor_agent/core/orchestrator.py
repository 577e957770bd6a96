"""Chat turn orchestrator.

One turn runs these stages in order:

1. resolve the persona (fatal when none exists)
2. load prior messages of the chat
3. crawl news context for supported locations (best-effort)
4. generate the reply (fatal)
5. synthesize speech (degrades to no audio)
6. generate video when requested and speech succeeded (degrades to no video)
7. persist the turn (best-effort)
8. sign media references for the response (best-effort)
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import httpx
import structlog

from anchor_agent.config import get_settings
from anchor_agent.core.ai_client import AIClient, SpeechAudio, get_ai_client
from anchor_agent.core.crawler import CrawlContextAssembler, get_crawler, is_location_supported
from anchor_agent.core.errors import AnchorError, PersonaNotFoundError, TurnFailedError
from anchor_agent.core.video import VideoGenerator, get_video_generator
from anchor_agent.db.chat_store import ChatStore, get_chat_store
from anchor_agent.db.models import PersonaRow
from anchor_agent.db.persona_store import PersonaStore, get_persona_store
from anchor_agent.storage.media_store import (
    MediaStore,
    get_media_store,
    is_stored_key,
    persona_image_key,
)
from anchor_agent.utils.audio import parse_rate_from_mime, pcm_to_wav
from anchor_agent.utils.text import clean_response_text

logger = structlog.get_logger()

# Selecting this persona makes the user a speaker in a two-voice dialogue.
MULTI_USER_PERSONA = "User"
MIN_IMAGE_BYTES = 1000
MEDIA_FIELDS = ("audioUrl", "videoUrl")


@dataclass
class TurnRequest:
    owner: str
    message: str
    persona_id: str | None = None
    persona_name: str | None = None
    chat_id: str | None = None
    locations: list[str] = field(default_factory=list)
    video_enabled: bool = False


@dataclass
class TurnResult:
    transcribed_text: str
    response_text: str
    chat_id: str
    timestamp: str
    audio_url: str | None = None
    user_audio_url: str | None = None
    video_url: str | None = None
    is_multi_user_mode: bool = False

    def to_response(self) -> dict[str, Any]:
        return {
            "transcribedText": self.transcribed_text,
            "responseText": self.response_text,
            "audioUrl": self.audio_url,
            "userAudioUrl": self.user_audio_url,
            "videoUrl": self.video_url,
            "timestamp": self.timestamp,
            "chatId": self.chat_id,
            "isMultiUserMode": self.is_multi_user_mode,
        }


@dataclass
class _Speech:
    audio: SpeechAudio | None = None
    audio_key: str | None = None
    user_audio_key: str | None = None


class ChatOrchestrator:
    """Sequences one chat turn across the stores and integrations."""

    def __init__(
        self,
        personas: PersonaStore,
        chats: ChatStore,
        ai: AIClient,
        media: MediaStore,
        crawler: CrawlContextAssembler,
        video: VideoGenerator,
        media_url_ttl: int = 3600,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.personas = personas
        self.chats = chats
        self.ai = ai
        self.media = media
        self.crawler = crawler
        self.video = video
        self.media_url_ttl = media_url_ttl
        self._http = http_client

    def resolve_persona(self, request: TurnRequest) -> PersonaRow:
        """By id, else by name, else the chat's persona, else the first persona."""
        persona = None
        if request.persona_id:
            persona = self.personas.get_persona_by_id(request.persona_id)
        elif request.persona_name:
            persona = self.personas.get_persona_by_name(request.persona_name)

        if persona is None and request.chat_id:
            try:
                persona = self.chats.get_chat_persona(request.owner, request.chat_id)
            except Exception as e:
                logger.warning("turn.chat_persona_failed", chat_id=request.chat_id, error=str(e))

        if persona is None:
            available = self.personas.get_personas()
            persona = available[0] if available else None

        if persona is None:
            raise PersonaNotFoundError("No personas available. Please run persona sync first.")
        return persona

    async def _news_context(self, locations: list[str], query: str) -> str:
        valid = [loc for loc in locations if is_location_supported(loc)]
        for loc in locations:
            if loc not in valid:
                logger.warning("turn.unsupported_location", location=loc)
        if not valid:
            return ""
        try:
            return await self.crawler.build_context(valid, query)
        except Exception as e:
            logger.warning("turn.context_failed", locations=valid, error=str(e))
            return ""

    async def _speak(
        self, request: TurnRequest, persona: PersonaRow, reply: str, chat_id: str
    ) -> _Speech:
        try:
            if persona.name == MULTI_USER_PERSONA:
                assistant = next(
                    (p for p in self.personas.get_personas() if p.name != MULTI_USER_PERSONA),
                    persona,
                )
                audio = await self.ai.synthesize_dialogue(request.message, reply, persona, assistant)
                # The dialogue covers both sides, so each message gets its own copy.
                user_key = await self.media.upload_audio(audio.data, request.owner, chat_id)
                assistant_key = await self.media.upload_audio(audio.data, request.owner, chat_id)
                return _Speech(audio, assistant_key, user_key)

            audio = await self.ai.synthesize_speech(reply, persona)
            key = await self.media.upload_audio(audio.data, request.owner, chat_id)
            return _Speech(audio, key)
        except Exception as e:
            logger.warning("turn.speech_failed", chat_id=chat_id, error=str(e))
            return _Speech()

    async def _persona_image(self, persona: PersonaRow) -> bytes | None:
        if not persona.image_url:
            logger.info("turn.video_skipped", reason="persona_has_no_image", persona=persona.name)
            return None
        url = await self.media.signed_url(persona_image_key(persona.image_url), self.media_url_ttl)
        client = self._http or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.get(url)
        finally:
            if self._http is None:
                await client.aclose()
        if response.status_code >= 400:
            raise AnchorError(f"failed to fetch persona image: {response.status_code}")
        if len(response.content) < MIN_IMAGE_BYTES:
            logger.warning("turn.video_skipped", reason="image_too_small", size=len(response.content))
            return None
        return response.content

    async def _make_video(
        self, request: TurnRequest, persona: PersonaRow, speech: _Speech, chat_id: str
    ) -> str | None:
        try:
            image = await self._persona_image(persona)
            if image is None:
                return None
            wav = pcm_to_wav(speech.audio.data, sample_rate=parse_rate_from_mime(speech.audio.mime_type))
            return await self.video.generate(wav, image, request.owner, chat_id)
        except Exception as e:
            logger.warning("turn.video_failed", chat_id=chat_id, error=str(e) or type(e).__name__)
            return None

    async def _sign(self, key: str | None) -> str | None:
        if not key:
            return None
        try:
            return await self.media.signed_url(key, self.media_url_ttl)
        except Exception as e:
            logger.warning("turn.sign_failed", key=key, error=str(e))
            return None

    async def run_turn(self, request: TurnRequest) -> TurnResult:
        """Run one turn. Raises TurnFailedError only for fatal stages."""
        try:
            persona = self.resolve_persona(request)
        except PersonaNotFoundError as e:
            raise TurnFailedError("persona", str(e)) from e

        history = self.chats.get_chat_history(request.owner, request.chat_id)
        context = await self._news_context(request.locations, request.message)

        try:
            raw_reply = await self.ai.generate_reply(request.message, persona, history, context)
        except Exception as e:
            logger.error("turn.reply_failed", persona=persona.name, error=str(e))
            raise TurnFailedError("reply", str(e)) from e

        chat_id = request.chat_id or str(uuid4())
        speech = await self._speak(request, persona, raw_reply, chat_id)

        video_key = None
        if request.video_enabled and speech.audio_key and speech.audio is not None:
            video_key = await self._make_video(request, persona, speech, chat_id)

        try:
            saved = self.chats.save_turn(
                request.owner,
                chat_id,
                request.message,
                raw_reply,
                persona,
                audio_ref=speech.audio_key,
                user_audio_ref=speech.user_audio_key,
                video_ref=video_key,
            )
            chat_id = saved.id
        except Exception as e:
            logger.error("turn.persist_failed", chat_id=chat_id, error=str(e))

        result = TurnResult(
            transcribed_text=request.message,
            response_text=clean_response_text(raw_reply) or "",
            chat_id=chat_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            audio_url=await self._sign(speech.audio_key),
            user_audio_url=await self._sign(speech.user_audio_key),
            video_url=await self._sign(video_key),
            is_multi_user_mode=persona.name == MULTI_USER_PERSONA,
        )
        logger.info(
            "turn.completed",
            chat_id=chat_id,
            persona=persona.name,
            audio=result.audio_url is not None,
            video=result.video_url is not None,
        )
        return result

    async def run_audio_turn(
        self, request: TurnRequest, audio_b64: str, mime_type: str = "audio/wav"
    ) -> TurnResult:
        """Transcribe base64 audio, then run the turn with the transcription."""
        if audio_b64.startswith("data:") and "," in audio_b64:
            audio_b64 = audio_b64.split(",", 1)[1]
        try:
            audio = base64.b64decode(audio_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TurnFailedError("transcription", f"invalid audio payload: {e}") from e
        try:
            transcription = await self.ai.transcribe(audio, mime_type)
        except Exception as e:
            logger.error("turn.transcription_failed", error=str(e))
            raise TurnFailedError("transcription", str(e)) from e
        if not transcription:
            raise TurnFailedError("transcription", "no speech recognised in audio")

        request.message = transcription
        return await self.run_turn(request)

    async def sign_messages(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Copies of `messages` with stored media keys replaced by signed URLs.

        Values that are already URLs are left alone; a key that fails to sign
        keeps its stored value.
        """

        async def sign_one(message: dict[str, Any]) -> dict[str, Any]:
            signed = dict(message)
            for name in MEDIA_FIELDS:
                ref = message.get(name)
                if isinstance(ref, str) and is_stored_key(ref):
                    signed[name] = await self._sign(ref) or ref
            return signed

        return list(await asyncio.gather(*(sign_one(m) for m in messages)))


def get_orchestrator() -> ChatOrchestrator:
    """Get ChatOrchestrator instance."""
    settings = get_settings()
    return ChatOrchestrator(
        get_persona_store(),
        get_chat_store(),
        get_ai_client(),
        get_media_store(),
        get_crawler(),
        get_video_generator(),
        media_url_ttl=settings.media_url_ttl,
    )
