"""
Deterministic hashing for cache keys.

``StepBuilder`` caches built step instances by ``(name, options-hash)``.
The hash must be stable across processes and independent of dict
insertion order, so options are canonicalised to JSON with sorted keys
before hashing.

Examples:
    >>> compute_hash("lint", "1.0.0") == compute_hash("lint", "1.0.0")
    True
    >>> stable_options_hash({"a": 1, "b": 2}) == stable_options_hash({"b": 2, "a": 1})
    True

Tags:
    hashing, cache-key, stepflow
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Concatenates string forms of all values with ``|`` and hashes with
    SHA-256. Order matters: ``(a, b)`` and ``(b, a)`` hash differently.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def stable_options_hash(*mappings: Mapping[str, Any] | None, length: int = 32) -> str:
    """Hash one or more option mappings independent of key order.

    Values that are not JSON-serialisable are hashed through ``repr``.
    ``None`` mappings hash like empty ones.
    """
    parts = [
        json.dumps(dict(mapping or {}), sort_keys=True, default=repr, separators=(",", ":"))
        for mapping in mappings
    ]
    return compute_hash(*parts, length=length)


__all__ = ["compute_hash", "stable_options_hash"]
