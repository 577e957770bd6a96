"""Store layer for personas, with a time-bounded in-process cache."""

from __future__ import annotations

import time
from collections.abc import Callable
from functools import lru_cache

import structlog

from anchor_agent.config import get_settings
from anchor_agent.db.client import SupabaseClient, get_supabase_client
from anchor_agent.db.models import PersonaRow

logger = structlog.get_logger()


class PersonaStore:
    """Read access to the personas table.

    The full list is cached for `ttl_seconds`. When a refresh fails the last
    good list is served again (or an empty list if there never was one), so
    callers never see a persona read error.
    """

    def __init__(
        self,
        db: SupabaseClient,
        ttl_seconds: float = 86400,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.db = db
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: list[PersonaRow] | None = None
        self._loaded_at: float | None = None

    def _is_fresh(self) -> bool:
        if self._cache is None or self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self.ttl_seconds

    def get_personas(self) -> list[PersonaRow]:
        """All personas ordered by name."""
        if self._is_fresh():
            return list(self._cache)

        try:
            rows = self.db.select("personas", order_by="name")
            personas = [PersonaRow(**row) for row in rows]
        except Exception as e:
            logger.warning(
                "personas.refresh_failed",
                error=str(e),
                serving_stale=self._cache is not None,
            )
            return list(self._cache or [])

        self._cache = personas
        self._loaded_at = self._clock()
        logger.info("personas.refreshed", count=len(personas))
        return list(personas)

    def get_persona_by_id(self, persona_id: str | None) -> PersonaRow | None:
        if not persona_id:
            return None
        return next((p for p in self.get_personas() if p.id == persona_id), None)

    def get_persona_by_name(self, name: str | None) -> PersonaRow | None:
        if not name:
            return None
        return next((p for p in self.get_personas() if p.name == name), None)

    def invalidate(self) -> None:
        """Drop the cached list so the next read goes to the database."""
        self._cache = None
        self._loaded_at = None


@lru_cache
def get_persona_store() -> PersonaStore:
    """Get the process-wide PersonaStore (the cache lives on the instance)."""
    settings = get_settings()
    return PersonaStore(get_supabase_client(), ttl_seconds=settings.persona_cache_ttl_seconds)
