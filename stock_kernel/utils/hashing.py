"""
Deterministic hashing utilities.

Hashes produced here name things (identity lock rows) and must be stable
across processes and releases.
"""

import hashlib
import json
from typing import Any


def canonicalize_json(data: Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted and no whitespace is emitted, so equal data always
    produces byte-identical output.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_parts(parts: tuple[str, ...] | list[str]) -> str:
    """
    Compute the SHA-256 hash of an ordered sequence of strings.

    A JSON array is hashed rather than a joined string, so ("a b", "c")
    and ("a", "b c") never collide.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(list(parts))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
