#!/usr/bin/env python3
"""Dump a user's profile, chats and referenced personas to a JSON file.

Usage:
    python scripts/backup_user_data.py USER_ID
    python scripts/backup_user_data.py USER_ID --out-dir /tmp/backups
"""

from __future__ import annotations

import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from anchor_agent.db.client import SupabaseClient, get_supabase_client

DEFAULT_BACKUP_DIR = Path(__file__).resolve().parent.parent / "backups"


def referenced_persona_ids(profile: dict[str, Any] | None, chats: list[dict[str, Any]]) -> list[str]:
    ids: set[str] = set()
    for chat in chats:
        if chat.get("persona_id"):
            ids.add(chat["persona_id"])
        for message in chat.get("messages") or []:
            if message.get("personaId"):
                ids.add(message["personaId"])
    if profile and profile.get("persona_id"):
        ids.add(profile["persona_id"])
    return sorted(ids)


def collect(db: SupabaseClient, user_id: str) -> dict[str, Any]:
    profiles = db.select("profiles", filters={"user_id": user_id}, limit=1)
    profile = profiles[0] if profiles else None
    chats = db.select("chats", filters={"user_id": user_id}, order_by="created_at")
    personas = db.select_in("personas", "id", referenced_persona_ids(profile, chats))

    return {
        "metadata": {
            "backup_date": datetime.now(timezone.utc).isoformat(),
            "user_id": user_id,
            "total_chats": len(chats),
            "total_personas": len(personas),
            "has_profile": profile is not None,
        },
        "profile": profile,
        "chats": chats,
        "personas": personas,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Back up one user's data")
    parser.add_argument("user_id")
    parser.add_argument("--out-dir", type=Path, default=DEFAULT_BACKUP_DIR)
    args = parser.parse_args()

    print(f"Backing up user {args.user_id} ...")
    data = collect(get_supabase_client(), args.user_id)

    args.out_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    path = args.out_dir / f"user_backup_{args.user_id}_{timestamp}.json"
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")

    meta = data["metadata"]
    print(f"  Chats: {meta['total_chats']}")
    print(f"  Personas: {meta['total_personas']}")
    print(f"  Profile: {'yes' if meta['has_profile'] else 'no'}")
    print(f"Saved to {path}")


if __name__ == "__main__":
    main()
