"""Transaction reference generation."""

from __future__ import annotations

import secrets
import string
import threading
import time

_ALPHABET = string.digits + string.ascii_lowercase

_lock = threading.Lock()
_last_ms = 0


def _timestamp_ms() -> int:
    """Strictly increasing millisecond timestamp for this process."""
    global _last_ms
    with _lock:
        now = int(time.time() * 1000)
        if now <= _last_ms:
            now = _last_ms + 1
        _last_ms = now
        return now


def generate_reference(prefix: str = "KAM", token_length: int = 8) -> str:
    """Generate a unique, uppercase transaction reference.

    Format: ``<PREFIX>-<epoch ms>-<random base36 token>``, for example
    ``KAM-1718000000000-4F9K2Q1Z``.
    """
    token = "".join(secrets.choice(_ALPHABET) for _ in range(token_length))
    return f"{prefix}-{_timestamp_ms()}-{token}".upper()
