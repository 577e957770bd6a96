"""Store layer for user profiles."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from anchor_agent.core.errors import ProfileValidationError
from anchor_agent.db.client import SupabaseClient, get_supabase_client
from anchor_agent.db.models import ProfileRow
from anchor_agent.db.persona_store import PersonaStore, get_persona_store
from anchor_agent.utils.text import validate_email

logger = structlog.get_logger()


class ProfileStore:
    """Upsert/read/delete of the one profile row each user owns."""

    def __init__(self, db: SupabaseClient, personas: PersonaStore) -> None:
        self.db = db
        self.personas = personas

    def _with_persona(self, row: dict) -> ProfileRow:
        profile = ProfileRow(**row)
        profile.persona = self.personas.get_persona_by_id(profile.persona_id)
        return profile

    def save_profile(
        self,
        owner: str,
        display_name: str | None,
        email: str | None,
        persona_id: str | None = None,
    ) -> ProfileRow:
        """Create or update the profile for `owner`.

        Raises:
            ProfileValidationError: uid missing, e-mail missing or malformed,
                or persona id not in the persona set.
        """
        if not owner:
            raise ProfileValidationError("UID is required")
        if not email or not email.strip():
            raise ProfileValidationError("Email is required to save profile")
        if not validate_email(email):
            raise ProfileValidationError("Invalid email format")
        if persona_id and self.personas.get_persona_by_id(persona_id) is None:
            raise ProfileValidationError("Invalid persona ID")

        data = {
            "user_id": owner,
            "display_name": display_name,
            "email": email.strip(),
            "persona_id": persona_id or None,
            "is_saved_to_supabase": True,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        row = self.db.upsert("profiles", data, on_conflict="user_id")
        logger.info("profile.saved", user_id=owner, email="[REDACTED]", persona_id=persona_id)
        return self._with_persona(row)

    def get_profile(self, owner: str) -> ProfileRow | None:
        rows = self.db.select("profiles", filters={"user_id": owner}, limit=1)
        if not rows:
            return None
        return self._with_persona(rows[0])

    def delete_profile(self, owner: str) -> ProfileRow | None:
        """Delete the profile and return the removed row, or None if there was none."""
        deleted = self.db.delete_where("profiles", {"user_id": owner})
        if not deleted:
            return None
        logger.info("profile.deleted", user_id=owner)
        return ProfileRow(**deleted[0])


def get_profile_store() -> ProfileStore:
    """Get ProfileStore instance."""
    return ProfileStore(get_supabase_client(), get_persona_store())
