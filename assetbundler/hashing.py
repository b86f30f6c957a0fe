"""Deterministic fingerprints used as workspace cache keys."""
from __future__ import annotations

import hashlib

HASH_LENGTH = 8


def compute_hash(value: str) -> str:
    """Return the first eight lowercase hex characters of the SHA-256 digest of ``value``."""

    if value is None:
        raise ValueError("Hash input must not be None")
    if not isinstance(value, str):
        raise TypeError(f"Hash input must be a string, got {type(value).__name__}")
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return digest[:HASH_LENGTH]
