"""Utility helpers shared across modules."""

from __future__ import annotations

from datetime import UTC, datetime
from hashlib import sha256
from urllib.parse import urlsplit, urlunsplit


def parse_iso_datetime(value: str) -> datetime:
    """Convert ISO strings (with trailing Z) into aware UTC datetimes."""
    return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def normalize_url(url: str) -> str:
    """Drop query string and fragment so tracking parameters don't matter."""
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def url_host(url: str) -> str:
    """Lower-cased host of a URL, empty for relative or opaque URLs."""
    return (urlsplit(url).hostname or "").lower()


def sha256_hex(payload: bytes) -> str:
    """Convenience wrapper for hex digests."""
    return sha256(payload).hexdigest()
