"""Small shared helpers: input sanitising and datetime normalisation."""

from datetime import timezone

import bleach


def sanitize(text, max_length=None):
    """Strip all HTML tags from user or vendor input."""
    if text is None:
        return text
    cleaned = bleach.clean(str(text), tags=[], strip=True).strip()
    if max_length is not None:
        cleaned = cleaned[:max_length]
    return cleaned


def as_utc(value):
    """SQLite drops tzinfo; treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
