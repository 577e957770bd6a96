"""Main API router: aggregates all endpoint modules."""

from fastapi import APIRouter

from anchor_agent.api.chat import router as chat_router
from anchor_agent.api.chats import router as chats_router
from anchor_agent.api.media import router as media_router
from anchor_agent.api.personas import router as personas_router
from anchor_agent.api.profiles import router as profiles_router

api_router = APIRouter()

api_router.include_router(personas_router, tags=["personas"])
api_router.include_router(profiles_router, prefix="/profile", tags=["profiles"])
api_router.include_router(chats_router, prefix="/chats", tags=["chats"])
api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
api_router.include_router(media_router, prefix="/audio", tags=["media"])
