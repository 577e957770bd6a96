"""Media endpoints: on-demand signing and a same-origin streaming proxy."""

from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from anchor_agent.api.models import SignedUrlResponse
from anchor_agent.config import Settings, get_settings
from anchor_agent.core.errors import InvalidMediaKeyError
from anchor_agent.storage.media_store import MediaStore, get_media_store, media_content_type

logger = structlog.get_logger()

router = APIRouter()

PROXY_CACHE_SECONDS = 86400


def get_proxy_transport() -> httpx.AsyncBaseTransport | None:
    """Transport for upstream media fetches; None uses the network."""
    return None


async def _sign(media: MediaStore, key: str, ttl_seconds: int) -> str:
    try:
        return await media.sign_media_key(key, ttl_seconds)
    except InvalidMediaKeyError:
        logger.warning("media.invalid_key", key=key)
        raise HTTPException(status_code=400, detail="Invalid S3 key format")


@router.get("/sign/{key:path}", response_model=SignedUrlResponse, response_model_by_alias=True)
async def sign_media(
    key: str,
    media: MediaStore = Depends(get_media_store),
    settings: Settings = Depends(get_settings),
) -> SignedUrlResponse:
    """Fresh signed URL for an `owner/chat/file.ext` media key."""
    url = await _sign(media, key, settings.media_url_ttl)
    return SignedUrlResponse(signed_url=url)


@router.get("/s3/{key:path}")
async def proxy_media(
    key: str,
    media: MediaStore = Depends(get_media_store),
    settings: Settings = Depends(get_settings),
    transport: httpx.AsyncBaseTransport | None = Depends(get_proxy_transport),
) -> StreamingResponse:
    """Stream a stored media object through this origin."""
    url = await _sign(media, key, settings.media_url_ttl)

    client = httpx.AsyncClient(transport=transport, timeout=60.0)
    try:
        upstream = await client.send(client.build_request("GET", url), stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        logger.warning("media.proxy_fetch_failed", key=key, error=str(e))
        raise HTTPException(status_code=502, detail="Failed to fetch media from S3")
    if upstream.status_code >= 400:
        await upstream.aclose()
        await client.aclose()
        logger.warning("media.proxy_upstream_failed", key=key, status=upstream.status_code)
        raise HTTPException(
            status_code=upstream.status_code,
            detail=f"Failed to fetch media from S3: {upstream.status_code}",
        )

    async def body():
        try:
            async for chunk in upstream.aiter_bytes():
                yield chunk
        finally:
            await upstream.aclose()
            await client.aclose()

    return StreamingResponse(
        body(),
        media_type=media_content_type(key),
        headers={"Cache-Control": f"public, max-age={PROXY_CACHE_SECONDS}"},
    )
