"""Content fingerprints for dedup and staleness detection."""

from __future__ import annotations

import hashlib


def fingerprint(data: bytes | str) -> str:
    """SHA-256 hex digest of raw bytes (strings are UTF-8 encoded first)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()
