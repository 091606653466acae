"""
Environment variable readers used by config.py.

Secrets like PRINTFUL_WEBHOOK_SECRET are stripped by default: a trailing
newline pasted into a dashboard silently breaks HMAC verification.
"""
import os
from typing import Optional


def get_env_str(
    name: str,
    default: Optional[str] = None,
    required: bool = False,
    strip: bool = True
) -> Optional[str]:
    """
    Read a string variable.

    Empty (or whitespace-only, when strip=True) values count as missing.

    Raises:
        ValueError: If required=True and the value is missing or empty
    """
    value = os.getenv(name)

    if value is None:
        if required:
            raise ValueError(
                f"Required environment variable '{name}' is not set. "
                f"Please add it to your .env file or environment."
            )
        return default

    if strip:
        value = value.strip()

    if not value:
        if required:
            raise ValueError(
                f"Required environment variable '{name}' is empty (or whitespace-only)."
            )
        return default

    return value


def get_env_bool(name: str, default: bool = False) -> bool:
    """Truthy values: "1", "true", "yes", "on" (case-insensitive)."""
    value = os.getenv(name, "").strip().lower()

    if not value:
        return default

    return value in ("1", "true", "yes", "on")


def get_env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    """
    Read an integer variable. Unset or empty values return default.

    Values below `minimum` are clamped up to it.
    """
    raw = get_env_str(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Environment variable '{name}' must be an integer, got '{raw}'.")
    if minimum is not None and value < minimum:
        return minimum
    return value


def get_env_float(name: str, default: float) -> float:
    raw = get_env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable '{name}' must be a number, got '{raw}'.")
