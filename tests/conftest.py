"""Test fixtures: mock Supabase client, fake integrations and shared test data."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from anchor_agent.config import Settings
from anchor_agent.core.ai_client import SpeechAudio
from anchor_agent.db.chat_store import ChatStore
from anchor_agent.db.client import SupabaseClient
from anchor_agent.db.persona_store import PersonaStore
from anchor_agent.db.profile_store import ProfileStore


class MockSupabaseClient(SupabaseClient):
    """In-memory mock of the Supabase client for testing."""

    def __init__(self):
        self._tables: dict[str, list[dict[str, Any]]] = {
            "personas": [],
            "profiles": [],
            "chats": [],
        }
        self.fail_selects = False

    @property
    def client(self):
        return MagicMock()

    @staticmethod
    def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
        return all(row.get(k) == v for k, v in (filters or {}).items())

    def insert(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        record = {"id": str(uuid4()), "created_at": now, "updated_at": now, **data}
        self._tables.setdefault(table, []).append(record)
        return dict(record)

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        if self.fail_selects:
            raise ConnectionError("database unavailable")
        rows = [dict(r) for r in self._tables.get(table, []) if self._matches(r, filters)]
        if order_by:
            rows = sorted(rows, key=lambda r: r.get(order_by) or "", reverse=not ascending)
        if limit:
            rows = rows[:limit]
        return rows

    def select_in(self, table: str, column: str, values: list[Any]) -> list[dict[str, Any]]:
        return [dict(r) for r in self._tables.get(table, []) if r.get(column) in values]

    def update(self, table: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        for row in self._tables.get(table, []):
            if row["id"] == id:
                row.update(data)
                return dict(row)
        raise ValueError(f"Row {id} not found in {table}")

    def update_where(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        updated = []
        for row in self._tables.get(table, []):
            if self._matches(row, filters):
                row.update(data)
                updated.append(dict(row))
        return updated

    def upsert(self, table: str, data: dict[str, Any], on_conflict: str) -> dict[str, Any]:
        for row in self._tables.get(table, []):
            if row.get(on_conflict) == data.get(on_conflict):
                row.update(data)
                return dict(row)
        return self.insert(table, data)

    def delete_where(self, table: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        rows = self._tables.get(table, [])
        deleted = [dict(r) for r in rows if self._matches(r, filters)]
        self._tables[table] = [r for r in rows if not self._matches(r, filters)]
        return deleted


class FakeMediaStore:
    """Records uploads; signs keys as predictable fake URLs."""

    bucket = "test-bucket"

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_sign: set[str] = set()
        self._counter = 0

    def _key(self, owner: str, chat_id: str, ext: str) -> str:
        self._counter += 1
        return f"{owner}/{chat_id}/file-{self._counter}.{ext}"

    async def upload_audio(self, data: bytes, owner: str, chat_id: str) -> str:
        key = self._key(owner, chat_id, "pcm")
        self.objects[key] = data
        return key

    async def upload_video(self, data: bytes, owner: str, chat_id: str) -> str:
        key = self._key(owner, chat_id, "mp4")
        self.objects[key] = data
        return key

    async def signed_url(self, key: str, ttl_seconds: int = 3600) -> str:
        if key in self.fail_sign:
            raise RuntimeError("signing failed")
        return f"https://signed.example/{key}?ttl={ttl_seconds}"

    async def sign_media_key(self, key: str, ttl_seconds: int = 3600) -> str:
        from anchor_agent.core.errors import InvalidMediaKeyError
        from anchor_agent.storage.media_store import is_media_key

        if not is_media_key(key):
            raise InvalidMediaKeyError(key)
        return await self.signed_url(key, ttl_seconds)


PERSONAS = [
    {
        "id": "p-alex",
        "name": "Alex",
        "voice_name": "Kore",
        "description": "A sharp evening anchor.",
        "tone": "calm and authoritative",
        "image_url": "https://test-bucket.s3.us-east-1.amazonaws.com/personas/alex.webp",
    },
    {
        "id": "p-bella",
        "name": "Bella",
        "voice_name": "Puck",
        "description": "An upbeat morning host.",
        "tone": "cheerful",
        "image_url": None,
    },
    {
        "id": "p-user",
        "name": "User",
        "voice_name": "Charon",
        "description": "The listener.",
        "tone": "curious",
        "image_url": None,
    },
]


@pytest.fixture
def mock_db() -> MockSupabaseClient:
    """Fresh mock database seeded with personas."""
    db = MockSupabaseClient()
    db._tables["personas"] = [dict(p) for p in PERSONAS]
    return db


@pytest.fixture
def persona_store(mock_db) -> PersonaStore:
    return PersonaStore(mock_db)


@pytest.fixture
def chat_store(mock_db, persona_store) -> ChatStore:
    return ChatStore(mock_db, persona_store)


@pytest.fixture
def profile_store(mock_db, persona_store) -> ProfileStore:
    return ProfileStore(mock_db, persona_store)


@pytest.fixture
def media() -> FakeMediaStore:
    return FakeMediaStore()


@pytest.fixture
def ai() -> MagicMock:
    """AI client double: fixed reply, fixed speech, fixed transcription."""
    client = MagicMock()
    client.generate_reply = AsyncMock(return_value="[chuckles] Big news tonight.")
    client.synthesize_speech = AsyncMock(
        return_value=SpeechAudio(b"\x00\x01" * 100, "audio/L16;codec=pcm;rate=24000")
    )
    client.synthesize_dialogue = AsyncMock(return_value=SpeechAudio(b"\x02\x03" * 100))
    client.transcribe = AsyncMock(return_value="What happened downtown?")
    return client


@pytest.fixture
def crawler() -> MagicMock:
    crawler = MagicMock()
    crawler.build_context = AsyncMock(return_value="")
    return crawler


@pytest.fixture
def video() -> MagicMock:
    video = MagicMock()
    video.generate = AsyncMock(return_value="u1/c1/video.mp4")
    return video


@pytest.fixture
def orchestrator(persona_store, chat_store, ai, media, crawler, video):
    from anchor_agent.core.orchestrator import ChatOrchestrator

    return ChatOrchestrator(persona_store, chat_store, ai, media, crawler, video)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def app(persona_store, chat_store, profile_store, media, orchestrator, settings):
    """FastAPI test app with mocked dependencies."""
    from anchor_agent.api.media import get_proxy_transport
    from anchor_agent.config import get_settings
    from anchor_agent.core.orchestrator import get_orchestrator
    from anchor_agent.db.chat_store import get_chat_store
    from anchor_agent.db.persona_store import get_persona_store
    from anchor_agent.db.profile_store import get_profile_store
    from anchor_agent.main import app as _app
    from anchor_agent.storage.media_store import get_media_store

    _app.dependency_overrides[get_persona_store] = lambda: persona_store
    _app.dependency_overrides[get_chat_store] = lambda: chat_store
    _app.dependency_overrides[get_profile_store] = lambda: profile_store
    _app.dependency_overrides[get_media_store] = lambda: media
    _app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    _app.dependency_overrides[get_settings] = lambda: settings
    _app.dependency_overrides[get_proxy_transport] = lambda: None

    yield _app

    _app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """HTTP test client."""
    return TestClient(app, raise_server_exceptions=False)
