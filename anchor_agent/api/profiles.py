"""Profile endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException

from anchor_agent.api.models import (
    DeletedProfile,
    ProfileDeleteResponse,
    ProfileResponse,
    ProfileSaveRequest,
)
from anchor_agent.core.errors import ProfileValidationError
from anchor_agent.db.profile_store import ProfileStore, get_profile_store

logger = structlog.get_logger()

router = APIRouter()


@router.post("/save")
async def save_profile(
    data: ProfileSaveRequest,
    store: ProfileStore = Depends(get_profile_store),
) -> dict:
    """Create or update the caller's profile."""
    try:
        profile = store.save_profile(data.uid, data.display_name, data.email, data.persona_id)
    except ProfileValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "success": True,
        "profile": ProfileResponse.from_row(profile).model_dump(mode="json", by_alias=True),
    }


@router.get("/{uid}")
async def get_profile(uid: str, store: ProfileStore = Depends(get_profile_store)) -> dict:
    profile = store.get_profile(uid)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": ProfileResponse.from_row(profile).model_dump(mode="json", by_alias=True)}


@router.delete("/{uid}", response_model=ProfileDeleteResponse, response_model_by_alias=True)
async def delete_profile(
    uid: str, store: ProfileStore = Depends(get_profile_store)
) -> ProfileDeleteResponse:
    deleted = store.delete_profile(uid)
    if deleted is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return ProfileDeleteResponse(
        deleted_profile=DeletedProfile(
            uid=deleted.user_id, display_name=deleted.display_name, email=deleted.email
        )
    )
