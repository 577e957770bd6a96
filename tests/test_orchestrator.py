"""Tests for the chat turn orchestrator."""

from __future__ import annotations

import base64
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from anchor_agent.core.errors import TurnFailedError
from anchor_agent.core.orchestrator import ChatOrchestrator, TurnRequest


def image_client(size: int = 5000, status: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, content=b"i" * size)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def with_images(persona_store, chat_store, ai, media, crawler, video):
    def build(size=5000, status=200):
        return ChatOrchestrator(
            persona_store, chat_store, ai, media, crawler, video,
            http_client=image_client(size, status),
        )

    return build


class TestResolvePersona:
    def test_by_id(self, orchestrator):
        assert orchestrator.resolve_persona(TurnRequest("u1", "hi", persona_id="p-bella")).name == "Bella"

    def test_by_name(self, orchestrator):
        assert orchestrator.resolve_persona(TurnRequest("u1", "hi", persona_name="Bella")).id == "p-bella"

    def test_falls_back_to_chat_persona(self, orchestrator, chat_store, persona_store):
        chat_store.save_turn("u1", "c1", "a", "b", persona_store.get_persona_by_id("p-bella"))
        persona = orchestrator.resolve_persona(TurnRequest("u1", "hi", persona_id="missing", chat_id="c1"))
        assert persona.name == "Bella"

    def test_falls_back_to_first(self, orchestrator):
        assert orchestrator.resolve_persona(TurnRequest("u1", "hi")).name == "Alex"


class TestRunTurn:
    @pytest.mark.asyncio
    async def test_text_turn(self, orchestrator, ai, media, chat_store):
        result = await orchestrator.run_turn(TurnRequest("u1", "What's new?", persona_id="p-alex"))

        assert result.transcribed_text == "What's new?"
        assert result.response_text == "Big news tonight."
        assert result.audio_url.startswith("https://signed.example/u1/")
        assert result.user_audio_url is None
        assert result.video_url is None
        assert result.is_multi_user_mode is False

        chat = chat_store.get_chat("u1", result.chat_id)
        assert chat.title == "Chat with Alex"
        assistant = chat.messages[1]
        assert assistant["content"] == "[chuckles] Big news tonight."
        assert assistant["audioUrl"] in media.objects
        ai.synthesize_speech.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_history_passed_to_reply(self, orchestrator, ai, chat_store, persona_store):
        chat_store.save_turn("u1", "c1", "Earlier", "Reply", persona_store.get_persona_by_id("p-alex"))
        result = await orchestrator.run_turn(TurnRequest("u1", "Next", chat_id="c1"))

        history = ai.generate_reply.await_args.args[2]
        assert [m["content"] for m in history] == ["Earlier", "Reply"]
        assert result.chat_id == "c1"
        assert len(chat_store.get_chat("u1", "c1").messages) == 4

    @pytest.mark.asyncio
    async def test_news_context_only_for_supported_locations(self, orchestrator, ai, crawler):
        crawler.build_context.return_value = "BRIEFING"
        await orchestrator.run_turn(TurnRequest("u1", "news?", locations=["ottawa", "atlantis"]))

        crawler.build_context.assert_awaited_once_with(["ottawa"], "news?")
        assert ai.generate_reply.await_args.args[3] == "BRIEFING"

    @pytest.mark.asyncio
    async def test_no_crawl_without_valid_locations(self, orchestrator, crawler):
        await orchestrator.run_turn(TurnRequest("u1", "news?", locations=["atlantis"]))
        crawler.build_context.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_crawl_failure_degrades(self, orchestrator, ai, crawler):
        crawler.build_context.side_effect = RuntimeError("down")
        result = await orchestrator.run_turn(TurnRequest("u1", "news?", locations=["ottawa"]))
        assert result.response_text
        assert ai.generate_reply.await_args.args[3] == ""

    @pytest.mark.asyncio
    async def test_reply_failure_is_fatal(self, orchestrator, ai, chat_store):
        ai.generate_reply.side_effect = RuntimeError("quota")
        with pytest.raises(TurnFailedError) as exc:
            await orchestrator.run_turn(TurnRequest("u1", "hi", chat_id="c1"))
        assert exc.value.stage == "reply"
        assert chat_store.get_chat("u1", "c1") is None

    @pytest.mark.asyncio
    async def test_no_personas_is_fatal(self, orchestrator, mock_db, persona_store):
        mock_db._tables["personas"] = []
        persona_store.invalidate()
        with pytest.raises(TurnFailedError) as exc:
            await orchestrator.run_turn(TurnRequest("u1", "hi"))
        assert exc.value.stage == "persona"

    @pytest.mark.asyncio
    async def test_speech_failure_degrades(self, orchestrator, ai, chat_store):
        ai.synthesize_speech.side_effect = RuntimeError("tts down")
        result = await orchestrator.run_turn(TurnRequest("u1", "hi", video_enabled=True))

        assert result.audio_url is None
        assert result.video_url is None
        assert chat_store.get_chat("u1", result.chat_id).messages[1]["audioUrl"] is None

    @pytest.mark.asyncio
    async def test_persist_failure_still_answers(self, orchestrator, chat_store):
        chat_store.save_turn = MagicMock(side_effect=RuntimeError("db down"))
        result = await orchestrator.run_turn(TurnRequest("u1", "hi", chat_id="c9"))
        assert result.chat_id == "c9"
        assert result.audio_url is not None

    @pytest.mark.asyncio
    async def test_signing_failure_nulls_url(self, orchestrator, media):
        media.signed_url = AsyncMock(side_effect=RuntimeError("no creds"))
        result = await orchestrator.run_turn(TurnRequest("u1", "hi"))
        assert result.audio_url is None
        assert result.response_text == "Big news tonight."

    @pytest.mark.asyncio
    async def test_multi_user_mode(self, orchestrator, ai, chat_store):
        result = await orchestrator.run_turn(TurnRequest("u1", "Question?", persona_name="User"))

        assert result.is_multi_user_mode is True
        assert result.user_audio_url is not None
        assert result.audio_url is not None
        assert result.user_audio_url != result.audio_url
        _, _, user_persona, assistant_persona = ai.synthesize_dialogue.await_args.args
        assert user_persona.name == "User"
        assert assistant_persona.name == "Alex"

        user_message = chat_store.get_chat("u1", result.chat_id).messages[0]
        assert user_message["audioUrl"]


class TestVideo:
    @pytest.mark.asyncio
    async def test_video_generated(self, with_images, video, chat_store):
        orchestrator = with_images()
        result = await orchestrator.run_turn(TurnRequest("u1", "hi", persona_id="p-alex", video_enabled=True))

        assert result.video_url == "https://signed.example/u1/c1/video.mp4?ttl=3600"
        wav, image, owner, chat_id = video.generate.await_args.args
        assert wav[:4] == b"RIFF"
        assert len(image) == 5000
        assert owner == "u1"
        assert chat_store.get_chat("u1", result.chat_id).messages[1]["videoUrl"] == "u1/c1/video.mp4"

    @pytest.mark.asyncio
    async def test_not_requested(self, with_images, video):
        await with_images().run_turn(TurnRequest("u1", "hi", persona_id="p-alex"))
        video.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persona_without_image(self, with_images, video):
        result = await with_images().run_turn(
            TurnRequest("u1", "hi", persona_id="p-bella", video_enabled=True)
        )
        assert result.video_url is None
        video.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tiny_image_skips_video(self, with_images, video):
        result = await with_images(size=10).run_turn(
            TurnRequest("u1", "hi", persona_id="p-alex", video_enabled=True)
        )
        assert result.video_url is None
        video.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_video_failure_degrades(self, with_images, video):
        video.generate.side_effect = TimeoutError()
        result = await with_images().run_turn(
            TurnRequest("u1", "hi", persona_id="p-alex", video_enabled=True)
        )
        assert result.video_url is None
        assert result.audio_url is not None


class TestAudioTurn:
    @pytest.mark.asyncio
    async def test_transcribes_then_answers(self, orchestrator, ai):
        payload = "data:audio/webm;base64," + base64.b64encode(b"audio-bytes").decode()
        result = await orchestrator.run_audio_turn(TurnRequest("u1", payload), payload, "audio/webm")

        ai.transcribe.assert_awaited_once_with(b"audio-bytes", "audio/webm")
        assert result.transcribed_text == "What happened downtown?"
        assert ai.generate_reply.await_args.args[0] == "What happened downtown?"

    @pytest.mark.asyncio
    async def test_invalid_base64(self, orchestrator, ai):
        with pytest.raises(TurnFailedError) as exc:
            await orchestrator.run_audio_turn(TurnRequest("u1", "x"), "not base64!!")
        assert exc.value.stage == "transcription"
        ai.transcribe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_transcription(self, orchestrator, ai):
        ai.transcribe.return_value = ""
        with pytest.raises(TurnFailedError) as exc:
            await orchestrator.run_audio_turn(TurnRequest("u1", "x"), base64.b64encode(b"a").decode())
        assert exc.value.stage == "transcription"
        ai.generate_reply.assert_not_awaited()


class TestSignMessages:
    @pytest.mark.asyncio
    async def test_signs_stored_keys_only(self, orchestrator, media):
        media.fail_sign.add("u1/c1/bad.pcm")
        messages = [
            {"role": "user", "content": "a", "audioUrl": "u1/c1/a.pcm"},
            {"role": "assistant", "content": "b", "audioUrl": "https://old.example/x.pcm", "videoUrl": "u1/c1/v.mp4"},
            {"role": "assistant", "content": "c", "audioUrl": "u1/c1/bad.pcm", "videoUrl": None},
        ]
        signed = await orchestrator.sign_messages(messages)

        assert signed[0]["audioUrl"] == "https://signed.example/u1/c1/a.pcm?ttl=3600"
        assert signed[1]["audioUrl"] == "https://old.example/x.pcm"
        assert signed[1]["videoUrl"].startswith("https://signed.example/u1/c1/v.mp4")
        assert signed[2]["audioUrl"] == "u1/c1/bad.pcm"
        assert messages[0]["audioUrl"] == "u1/c1/a.pcm"
