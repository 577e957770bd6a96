#!/usr/bin/env python3
"""Generate portrait images for personas that don't have one yet.

Each persona's description is fed to the text-to-image workflow on the job
engine. The first image produced is re-encoded as WebP, stored under
`personas/` in the media bucket, and its URL is written back into the
personas config (the previous file is kept as a timestamped backup).

Usage:
    python scripts/generate_persona_images.py
    python scripts/generate_persona_images.py --config configs/personas.json \\
        --workflow workflows/t2i-flux-api.json
"""

from __future__ import annotations

import argparse
import asyncio
import io
import json
import random
import shutil
import sys
import time
from pathlib import Path
from typing import Any
from uuid import uuid4

from PIL import Image

from anchor_agent.config import get_settings
from anchor_agent.core.errors import JobBridgeError
from anchor_agent.core.job_bridge import JobBridge
from anchor_agent.core.video import load_workflow
from anchor_agent.storage.media_store import PERSONA_PREFIX, MediaStore, get_media_store
from anchor_agent.utils.logging import setup_logging
from anchor_agent.utils.text import slugify

ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG = ROOT / "configs" / "personas.json"
DEFAULT_WORKFLOW = ROOT / "workflows" / "t2i-flux-api.json"

PROMPT_NODE = "6"
SEED_NODE = "25"
SAVE_NODE = "55"
IMAGE_TIMEOUT_SECONDS = 300
WEBP_QUALITY = 85
PAUSE_BETWEEN_JOBS = 5.0

PROMPT_TEMPLATE = (
    "an upper body view of a canadian news anchor in a studio looking at camera "
    "reporting top stories, hands on the table infront. The look of the news anchor {description}"
)


def prepare_workflow(workflow: dict[str, Any], description: str, seed: int) -> dict[str, Any]:
    patched = json.loads(json.dumps(workflow))
    patched[PROMPT_NODE]["inputs"]["text"] = PROMPT_TEMPLATE.format(description=description)
    patched[SEED_NODE]["inputs"]["noise_seed"] = seed
    return patched


def to_webp(data: bytes, quality: int = WEBP_QUALITY) -> bytes:
    with Image.open(io.BytesIO(data)) as image:
        out = io.BytesIO()
        image.save(out, format="WEBP", quality=quality)
    return out.getvalue()


def public_url(media: MediaStore, key: str, region: str) -> str:
    return f"https://{media.bucket}.s3.{region}.amazonaws.com/{key}"


async def generate_image(server_url: str, workflow: dict[str, Any]) -> bytes:
    async with JobBridge(server_url, output_nodes=[SAVE_NODE]) as bridge:
        result = await asyncio.wait_for(bridge.run(workflow), timeout=IMAGE_TIMEOUT_SECONDS)
        if not result.ok:
            raise JobBridgeError(f"image job {result.status}: {result.error}")
        images = (result.output or {}).get("images") or []
        if not images:
            raise JobBridgeError("no images generated")
        first = images[0]
        return await bridge.fetch_output(
            first["filename"], first.get("subfolder", ""), first.get("type", "output")
        )


async def process(personas: list[dict[str, Any]], workflow: dict[str, Any]) -> int:
    settings = get_settings()
    media = get_media_store()
    generated = 0

    pending = [p for p in personas if not (p.get("imageUrl") or p.get("image_url"))]
    print(f"{len(pending)} of {len(personas)} personas need an image")

    for i, persona in enumerate(pending, start=1):
        name = persona["name"]
        print(f"[{i}/{len(pending)}] {name}")
        seed = random.randint(0, 99_999_999_999_999)
        try:
            raw = await generate_image(
                settings.comfy_ui_server_url,
                prepare_workflow(workflow, persona.get("description", ""), seed),
            )
            filename = f"{slugify(name)}-{uuid4()}.webp"
            key = await media.upload_persona_image(to_webp(raw), filename)
        except (JobBridgeError, asyncio.TimeoutError, OSError) as e:
            print(f"  FAILED {name}: {e}", file=sys.stderr)
            continue

        persona["imageUrl"] = public_url(media, key, settings.aws_region)
        generated += 1
        print(f"  Stored {key}")

        if i < len(pending):
            await asyncio.sleep(PAUSE_BETWEEN_JOBS)

    return generated


async def list_images() -> None:
    objects = await get_media_store().list_objects(PERSONA_PREFIX)
    if not objects:
        print("No persona images stored.")
    for obj in objects:
        print(f"{obj['Key']}  {obj.get('Size', 0)} bytes  {obj.get('LastModified', '')}")


def save_config(path: Path, personas: list[dict[str, Any]]) -> Path:
    backup = path.with_name(f"{path.name}.backup.{int(time.time() * 1000)}")
    shutil.copyfile(path, backup)
    path.write_text(json.dumps({"personas": personas}, indent=2), encoding="utf-8")
    return backup


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate persona portrait images")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)
    parser.add_argument("--workflow", type=Path, default=DEFAULT_WORKFLOW)
    parser.add_argument(
        "--list", action="store_true", help="List stored persona images and exit"
    )
    args = parser.parse_args()

    setup_logging(get_settings().log_level)
    if args.list:
        asyncio.run(list_images())
        return

    personas = json.loads(args.config.read_text(encoding="utf-8"))["personas"]
    workflow = load_workflow(args.workflow)

    generated = asyncio.run(process(personas, workflow))
    if generated:
        backup = save_config(args.config, personas)
        print(f"Backup written to {backup}")
    print(f"Done. Generated {generated} image(s).")


if __name__ == "__main__":
    main()
