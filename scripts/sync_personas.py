#!/usr/bin/env python3
"""Sync anchor personas from a JSON config file into the personas table.

Personas are matched by name: existing rows are updated in place, new names
are inserted.

Usage:
    python scripts/sync_personas.py                          # configs/personas.json
    python scripts/sync_personas.py --config my_personas.json --dry-run
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from anchor_agent.db.client import SupabaseClient, get_supabase_client

DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "configs" / "personas.json"


def to_row(persona: dict[str, Any]) -> dict[str, Any]:
    """Map a config entry (camelCase or snake_case) onto personas columns."""
    row = {
        "name": persona["name"],
        "voice_name": persona.get("voice_name") or persona.get("voiceName"),
        "description": persona.get("description"),
        "tone": persona.get("tone"),
    }
    image_url = persona.get("image_url") or persona.get("imageUrl")
    if image_url:
        row["image_url"] = image_url
    return row


def sync(db: SupabaseClient, personas: list[dict[str, Any]], dry_run: bool = False) -> dict[str, int]:
    counts = {"created": 0, "updated": 0, "failed": 0}
    existing = {row["name"]: row for row in db.select("personas")}

    for persona in personas:
        try:
            row = to_row(persona)
        except KeyError:
            print(f"  FAILED (no name): {persona}", file=sys.stderr)
            counts["failed"] += 1
            continue
        if not row["voice_name"]:
            print(f"  FAILED {row['name']}: voice_name is required", file=sys.stderr)
            counts["failed"] += 1
            continue

        current = existing.get(row["name"])
        if dry_run:
            print(f"  Would {'update' if current else 'create'}: {row['name']}")
            counts["updated" if current else "created"] += 1
            continue

        if current:
            db.update("personas", current["id"], row)
            print(f"  Updated persona: {row['name']}")
            counts["updated"] += 1
        else:
            db.insert("personas", row)
            print(f"  Created persona: {row['name']}")
            counts["created"] += 1

    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync personas config into the database")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Personas JSON file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument("--dry-run", action="store_true", help="Show changes without writing")
    args = parser.parse_args()

    personas = json.loads(args.config.read_text(encoding="utf-8"))["personas"]
    print(f"Syncing {len(personas)} personas from {args.config} ...")
    counts = sync(get_supabase_client(), personas, dry_run=args.dry_run)
    print(
        f"Done. created={counts['created']} updated={counts['updated']} failed={counts['failed']}"
    )
    if counts["failed"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
