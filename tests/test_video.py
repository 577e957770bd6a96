"""Tests for talking-head video generation."""

from __future__ import annotations

import asyncio
import json
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from anchor_agent.core.errors import JobBridgeError
from anchor_agent.core.job_bridge import JobResult
from anchor_agent.core.video import VideoGenerator, first_output_file

WORKFLOW = {
    "125": {"class_type": "LoadAudio", "inputs": {"audio": "placeholder.wav"}},
    "133": {"class_type": "LoadImage", "inputs": {"image": "placeholder.png"}},
    "131": {"class_type": "VHS_VideoCombine", "inputs": {}},
}


@pytest.fixture
def workflow_path(tmp_path):
    path = tmp_path / "i2v.json"
    path.write_text(json.dumps(WORKFLOW))
    return path


def fake_bridge(result: JobResult, video: bytes = b"v" * 2000, run=None):
    bridge = MagicMock()
    bridge.upload_input = AsyncMock()
    bridge.run = run or AsyncMock(return_value=result)
    bridge.fetch_output = AsyncMock(return_value=video)
    bridge.__aenter__ = AsyncMock(return_value=bridge)
    bridge.__aexit__ = AsyncMock(return_value=None)
    factory = MagicMock(return_value=bridge)
    return factory, bridge


def generator(media, workflow_path, factory, timeout=300.0):
    return VideoGenerator(
        media, "http://engine:8188", workflow_path, timeout_seconds=timeout, bridge_factory=factory
    )


def test_first_output_file():
    assert first_output_file({"gifs": [{"filename": "a.mp4"}]})["filename"] == "a.mp4"
    assert first_output_file({"videos": [{"filename": "b.mp4"}]})["filename"] == "b.mp4"
    with pytest.raises(JobBridgeError):
        first_output_file({"images": []})


def test_prepare_workflow_does_not_mutate(media, workflow_path):
    gen = generator(media, workflow_path, MagicMock())
    patched = gen.prepare_workflow(WORKFLOW, "audio_x.wav", "image_y.png")
    assert patched["125"]["inputs"]["audio"] == "audio_x.wav"
    assert patched["133"]["inputs"]["image"] == "image_y.png"
    assert WORKFLOW["125"]["inputs"]["audio"] == "placeholder.wav"


@pytest.mark.asyncio
async def test_generate_stores_video(media, workflow_path):
    result = JobResult("success", "job-1", output={"gifs": [{"filename": "out.mp4", "subfolder": "", "type": "output"}]})
    factory, bridge = fake_bridge(result)

    key = await generator(media, workflow_path, factory).generate(b"RIFF", b"PNG", "u1", "c1")

    assert key.startswith("u1/c1/") and key.endswith(".mp4")
    assert media.objects[key] == b"v" * 2000
    factory.assert_called_once_with("http://engine:8188", output_nodes=["131"])

    audio_call, image_call = bridge.upload_input.await_args_list
    audio_name = audio_call.args[1]
    image_name = image_call.args[1]
    assert audio_name.startswith("audio_") and audio_name.endswith(".wav")
    assert audio_call.kwargs["content_type"] == "audio/wav"
    assert image_name.startswith("image_") and image_name.endswith(".png")

    submitted = bridge.run.await_args.args[0]
    assert submitted["125"]["inputs"]["audio"] == audio_name
    assert submitted["133"]["inputs"]["image"] == image_name
    bridge.fetch_output.assert_awaited_once_with("out.mp4", "", "output")


@pytest.mark.asyncio
async def test_workflow_read_off_event_loop(media, workflow_path):
    result = JobResult("success", "job-1", output={"videos": [{"filename": "out.mp4"}]})
    factory, bridge = fake_bridge(result)
    readers = []

    def load(path):
        readers.append(threading.get_ident())
        return WORKFLOW

    with patch("anchor_agent.core.video.load_workflow", side_effect=load) as loader:
        await generator(media, workflow_path, factory).generate(b"a", b"i", "u1", "c1")

    loader.assert_called_once_with(workflow_path)
    assert readers[0] != threading.get_ident()
    assert bridge.run.await_args.args[0]["131"]["class_type"] == "VHS_VideoCombine"


@pytest.mark.asyncio
async def test_failed_job_raises(media, workflow_path):
    factory, _ = fake_bridge(JobResult("error", "job-1", error={"exception_message": "boom"}))
    with pytest.raises(JobBridgeError):
        await generator(media, workflow_path, factory).generate(b"a", b"i", "u1", "c1")
    assert media.objects == {}


@pytest.mark.asyncio
async def test_tiny_video_rejected(media, workflow_path):
    result = JobResult("success", "job-1", output={"videos": [{"filename": "out.mp4"}]})
    factory, _ = fake_bridge(result, video=b"x" * 10)
    with pytest.raises(JobBridgeError, match="too small"):
        await generator(media, workflow_path, factory).generate(b"a", b"i", "u1", "c1")


@pytest.mark.asyncio
async def test_timeout(media, workflow_path):
    async def never(_workflow):
        await asyncio.sleep(10)

    factory, bridge = fake_bridge(None, run=never)
    with pytest.raises(asyncio.TimeoutError):
        await generator(media, workflow_path, factory, timeout=0.01).generate(b"a", b"i", "u1", "c1")
    bridge.__aexit__.assert_awaited()
