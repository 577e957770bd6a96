"""Text helpers used by the stores, the crawler and the API."""

from __future__ import annotations

import re
from datetime import datetime, timezone

EXPRESSION_TAG_PATTERN = re.compile(r"\s*\[[^\]]*\]\s*")
WHITESPACE_PATTERN = re.compile(r"\s+")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SLUG_STRIP_PATTERN = re.compile(r"[^a-z0-9]")


def clean_response_text(text: str | None) -> str | None:
    """Remove bracketed expression tags ("[chuckles]") and collapse whitespace."""
    if not text:
        return text
    without_tags = EXPRESSION_TAG_PATTERN.sub(" ", text)
    return WHITESPACE_PATTERN.sub(" ", without_tags).strip()


def normalize_whitespace(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def truncate(text: str, limit: int) -> str:
    """Cut text to `limit` characters, appending an ellipsis when it was longer."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


def validate_email(email: str | None) -> bool:
    """Validate e-mail format: something@domain.tld, no whitespace."""
    if not email or not email.strip():
        return False
    return bool(EMAIL_PATTERN.match(email.strip()))


def slugify(name: str) -> str:
    """Lowercase, non-alphanumerics to single hyphens, no leading/trailing hyphen."""
    slug = SLUG_STRIP_PATTERN.sub("-", name.lower())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Human-readable age: 'Less than 1 hour ago', '3 hours ago', '2 days ago' or a date."""
    now = now or datetime.now(timezone.utc)
    diff_hours = int((now - moment).total_seconds() // 3600)
    diff_days = diff_hours // 24

    if diff_hours < 1:
        return "Less than 1 hour ago"
    if diff_hours < 24:
        return f"{diff_hours} hour{'s' if diff_hours > 1 else ''} ago"
    if diff_days < 7:
        return f"{diff_days} day{'s' if diff_days > 1 else ''} ago"
    return moment.date().isoformat()
