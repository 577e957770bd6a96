"""Persona and news-location endpoints."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, Depends

from anchor_agent.config import Settings, get_settings
from anchor_agent.core.crawler import supported_locations
from anchor_agent.db.models import PersonaRow
from anchor_agent.db.persona_store import PersonaStore, get_persona_store
from anchor_agent.storage.media_store import MediaStore, get_media_store, persona_image_key

logger = structlog.get_logger()

router = APIRouter()


async def _with_signed_image(
    persona: PersonaRow, media: MediaStore, ttl_seconds: int
) -> dict[str, Any]:
    data = persona.model_dump(mode="json")
    if not persona.image_url:
        return data
    try:
        data["image_url"] = await media.signed_url(persona_image_key(persona.image_url), ttl_seconds)
    except Exception as e:
        logger.warning("personas.image_sign_failed", persona=persona.name, error=str(e))
        data["image_url"] = None
    return data


@router.get("/personas")
async def list_personas(
    store: PersonaStore = Depends(get_persona_store),
    media: MediaStore = Depends(get_media_store),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """All personas with their portrait URLs re-signed."""
    personas = store.get_personas()
    signed = await asyncio.gather(
        *(_with_signed_image(p, media, settings.persona_image_url_ttl) for p in personas)
    )
    return {"personas": list(signed)}


@router.get("/locations")
async def list_locations() -> dict[str, list[str]]:
    """Location tags the news crawler understands."""
    return {"locations": supported_locations()}
