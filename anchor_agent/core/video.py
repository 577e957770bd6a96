"""Talking-head video generation through the job bridge."""

from __future__ import annotations

import asyncio
import copy
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from uuid import uuid4

import structlog

from anchor_agent.config import get_settings
from anchor_agent.core.errors import JobBridgeError
from anchor_agent.core.job_bridge import JobBridge
from anchor_agent.storage.media_store import MediaStore, get_media_store

logger = structlog.get_logger()

MIN_VIDEO_BYTES = 1000


def load_workflow(path: str | Path) -> dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def first_output_file(output: dict[str, Any]) -> dict[str, Any]:
    """File descriptor of the first video (or gif) an output node produced."""
    for field in ("gifs", "videos"):
        files = output.get(field) or []
        if files:
            return files[0]
    raise JobBridgeError("no video output found in job result")


class VideoGenerator:
    """Turns speech audio plus a persona portrait into a stored video.

    Node ids are the audio loader, the image loader and the video save node of
    the image-to-video workflow.
    """

    def __init__(
        self,
        media: MediaStore,
        server_url: str,
        workflow_path: str | Path,
        timeout_seconds: float = 300.0,
        audio_node: str = "125",
        image_node: str = "133",
        save_node: str = "131",
        bridge_factory: Callable[..., JobBridge] = JobBridge,
    ) -> None:
        self.media = media
        self.server_url = server_url
        self.workflow_path = Path(workflow_path)
        self.timeout_seconds = timeout_seconds
        self.audio_node = audio_node
        self.image_node = image_node
        self.save_node = save_node
        self._bridge_factory = bridge_factory

    def prepare_workflow(
        self, workflow: dict[str, Any], audio_name: str, image_name: str
    ) -> dict[str, Any]:
        patched = copy.deepcopy(workflow)
        if "inputs" in patched.get(self.audio_node, {}):
            patched[self.audio_node]["inputs"]["audio"] = audio_name
        if "inputs" in patched.get(self.image_node, {}):
            patched[self.image_node]["inputs"]["image"] = image_name
        return patched

    async def generate(self, wav: bytes, image: bytes, owner: str, chat_id: str) -> str:
        """Run the workflow and return the media key of the stored video.

        Raises:
            JobBridgeError: the engine rejected or failed the job, or produced
                no usable output.
            asyncio.TimeoutError: no terminal event within the timeout.
        """
        loop = asyncio.get_running_loop()
        workflow = await loop.run_in_executor(None, load_workflow, self.workflow_path)
        audio_name = f"audio_{uuid4()}.wav"
        image_name = f"image_{uuid4()}.png"

        async with self._bridge_factory(self.server_url, output_nodes=[self.save_node]) as bridge:
            await bridge.upload_input(wav, audio_name, content_type="audio/wav")
            await bridge.upload_input(image, image_name, content_type="image/png")
            prepared = self.prepare_workflow(workflow, audio_name, image_name)

            result = await asyncio.wait_for(bridge.run(prepared), timeout=self.timeout_seconds)
            if not result.ok:
                raise JobBridgeError(f"video job ended with status {result.status}")

            descriptor = first_output_file(result.output or {})
            video = await bridge.fetch_output(
                descriptor["filename"],
                descriptor.get("subfolder") or "",
                descriptor.get("type") or "output",
            )

        if len(video) < MIN_VIDEO_BYTES:
            raise JobBridgeError(f"video file too small: {len(video)} bytes")

        key = await self.media.upload_video(video, owner, chat_id)
        logger.info("video.generated", key=key, size=len(video), job_id=result.job_id)
        return key


def get_video_generator() -> VideoGenerator:
    """Get VideoGenerator instance."""
    settings = get_settings()
    return VideoGenerator(
        get_media_store(),
        settings.comfy_ui_server_url,
        settings.video_workflow_path,
        timeout_seconds=settings.video_timeout_seconds,
    )
