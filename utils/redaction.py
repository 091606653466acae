"""Helpers for safely logging connection strings and secrets."""

from __future__ import annotations

from urllib.parse import urlparse

# Substrings that mark a key as credential-like (matched case-insensitively).
SENSITIVE_KEY_MARKERS = (
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "signature",
    "cookie",
)

REDACTED = "****"


def redact_database_url(url: str) -> str:
    """Return DATABASE_URL with password masked for logs/errors."""
    raw = (url or "").strip()
    if not raw:
        return "EMPTY_DATABASE_URL"
    try:
        parsed = urlparse(raw)
        scheme = parsed.scheme or "postgresql"
        host = parsed.hostname or "unknown-host"
        port = f":{parsed.port}" if parsed.port else ""
        db_name = parsed.path.lstrip("/") or "unknown-db"
        if parsed.username:
            return f"{scheme}://{parsed.username}:{REDACTED}@{host}{port}/{db_name}"
        return f"{scheme}://{host}{port}/{db_name}"
    except ValueError:
        return "INVALID_DATABASE_URL"


def is_sensitive_key(key) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in SENSITIVE_KEY_MARKERS)


def redact_mapping(data):
    """
    Return a copy of `data` with credential-like values masked.

    Recurses into nested dicts and lists; non-container values pass through.
    """
    if isinstance(data, dict):
        return {
            k: (REDACTED if is_sensitive_key(k) else redact_mapping(v))
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_mapping(v) for v in data]
    return data
