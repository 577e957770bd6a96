"""Signed media store: S3 uploads under generated keys plus time-limited read URLs."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

import boto3
import structlog
from botocore.config import Config as BotoConfig

from anchor_agent.config import get_settings
from anchor_agent.core.errors import AnchorError, InvalidMediaKeyError
from anchor_agent.utils.audio import PCM_CHANNELS, PCM_CONTENT_TYPE, PCM_SAMPLE_RATE

logger = structlog.get_logger()

MEDIA_EXTENSIONS = (".pcm", ".mp4")
PERSONA_PREFIX = "personas/"

CONTENT_TYPES = {
    ".pcm": PCM_CONTENT_TYPE,
    ".mp4": "video/mp4",
    ".webp": "image/webp",
    ".png": "image/png",
}


def build_media_key(owner: str, chat_id: str, ext: str) -> str:
    """Fresh `{owner}/{chat}/{uuid}.{ext}` key; every call returns a new key."""
    return f"{owner}/{chat_id}/{uuid4()}.{ext.lstrip('.')}"


def is_media_key(key: str | None, extensions: tuple[str, ...] = MEDIA_EXTENSIONS) -> bool:
    """True for `owner/chat/file.ext` with exactly three non-empty segments."""
    if not key:
        return False
    parts = key.split("/")
    if len(parts) != 3 or not all(parts):
        return False
    return parts[2].endswith(extensions)


def is_stored_key(ref: str | None) -> bool:
    """A stored reference is a bare key, not an already-signed or public URL."""
    if not ref:
        return False
    return not ref.startswith("http") and "?" not in ref


def persona_image_key(image_url: str) -> str:
    """Object key for a persona image given its bucket URL or bare key."""
    if image_url.startswith(("http://", "https://")):
        return urlparse(image_url).path.lstrip("/")
    return image_url.lstrip("/")


def media_content_type(key: str) -> str:
    for ext, content_type in CONTENT_TYPES.items():
        if key.endswith(ext):
            return content_type
    return "application/octet-stream"


class MediaStore:
    """Async facade over a boto3 S3 client.

    boto3 is blocking, so every call is dispatched to the default executor.
    Keys are never reused: uploads always generate a new uuid.
    """

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls) -> MediaStore:
        settings = get_settings()
        client = boto3.client(
            "s3",
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
            endpoint_url=settings.s3_endpoint_url,
            config=BotoConfig(region_name=settings.aws_region, signature_version="s3v4"),
        )
        return cls(client, settings.s3_bucket)

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def put(
        self,
        data: bytes,
        key: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Store `data` under `key` and return the key."""
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if metadata:
            params["Metadata"] = metadata
        await self._run(self.client.put_object, **params)
        logger.info("media.uploaded", key=key, size=len(data), content_type=content_type)
        return key

    async def signed_url(self, key: str, ttl_seconds: int = 3600) -> str:
        """Presigned GET URL valid for `ttl_seconds`."""
        try:
            return await self._run(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except Exception as e:
            logger.error("media.sign_failed", key=key, error=str(e))
            raise AnchorError(f"Failed to generate signed URL: {e}") from e

    async def sign_media_key(self, key: str, ttl_seconds: int = 3600) -> str:
        """Like `signed_url`, but only for `owner/chat/file.ext` chat media keys.

        Raises:
            InvalidMediaKeyError: the key does not have the chat media shape.
        """
        if not is_media_key(key):
            raise InvalidMediaKeyError(f"Invalid S3 key format: {key}")
        return await self.signed_url(key, ttl_seconds)

    async def signed_urls(self, keys: list[str], ttl_seconds: int = 3600) -> list[str]:
        """Sign many keys concurrently; keys that fail to sign are dropped."""
        results = await asyncio.gather(
            *(self.signed_url(key, ttl_seconds) for key in keys), return_exceptions=True
        )
        urls = [r for r in results if isinstance(r, str)]
        logger.info("media.signed_batch", signed=len(urls), requested=len(keys))
        return urls

    async def list_objects(self, prefix: str) -> list[dict[str, Any]]:
        response = await self._run(self.client.list_objects_v2, Bucket=self.bucket, Prefix=prefix)
        return response.get("Contents", [])

    async def upload_audio(self, data: bytes, owner: str, chat_id: str) -> str:
        """Store raw PCM speech as `{owner}/{chat}/{uuid}.pcm`."""
        return await self.put(
            data,
            build_media_key(owner, chat_id, "pcm"),
            PCM_CONTENT_TYPE,
            metadata={
                "original-format": "pcm",
                "sample-rate": str(PCM_SAMPLE_RATE),
                "channels": str(PCM_CHANNELS),
                "bits-per-sample": "16",
            },
        )

    async def upload_video(self, data: bytes, owner: str, chat_id: str) -> str:
        return await self.put(
            data,
            build_media_key(owner, chat_id, "mp4"),
            "video/mp4",
            metadata={"original-format": "mp4", "generated-by": "comfyui"},
        )

    async def upload_persona_image(
        self, data: bytes, filename: str, content_type: str = "image/webp"
    ) -> str:
        return await self.put(
            data,
            f"{PERSONA_PREFIX}{filename}",
            content_type,
            metadata={"uploaded-at": datetime.now(timezone.utc).isoformat()},
        )

    async def test_connection(self) -> bool:
        """Check that the bucket is reachable with the configured credentials."""
        try:
            await self._run(self.client.list_objects_v2, Bucket=self.bucket, MaxKeys=1)
        except Exception as e:
            logger.error("media.connection_failed", bucket=self.bucket, error=str(e))
            return False
        logger.info("media.connection_ok", bucket=self.bucket)
        return True


@lru_cache
def get_media_store() -> MediaStore:
    """Get cached MediaStore instance."""
    return MediaStore.from_settings()
