"""
Cache Key Normalization

Implements:
- build_key(key) → storage-safe key string

Short alphanumeric strings are used as-is. Everything else is hashed:
strings directly, other values through their compact JSON encoding.
Same key in = same key out, across processes.
"""

import hashlib
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

MAX_PLAIN_KEY_BYTES = 32


class KeyNormalizationError(ValueError):
    """Raised when a key has no deterministic JSON encoding."""


def _is_plain_key(key: str) -> bool:
    return key.isascii() and key.isalnum() and len(key) <= MAX_PLAIN_KEY_BYTES


def encode_key(key: Any) -> str:
    """
    Canonical JSON text for a non-string key.

    Dict entries keep insertion order; tuples encode like lists.
    """
    try:
        return json.dumps(
            key,
            separators=(",", ":"),
            ensure_ascii=True,
            allow_nan=False,
        )
    except (TypeError, ValueError, RecursionError) as e:
        raise KeyNormalizationError(f"Cannot normalize cache key of type {type(key).__name__}: {e}") from e


def build_key(key: Any) -> str:
    """
    Build a normalized cache key.

    Args:
        key: String, number, or any JSON-serializable structure

    Returns:
        The key itself for ASCII alphanumeric strings of at most 32 bytes,
        otherwise a 32-char MD5 hex digest

    Raises:
        KeyNormalizationError: key cannot be serialized
    """
    if isinstance(key, str):
        if _is_plain_key(key):
            return key
        return hashlib.md5(key.encode("utf-8"), usedforsecurity=False).hexdigest()

    digest = hashlib.md5(encode_key(key).encode("utf-8"), usedforsecurity=False).hexdigest()
    logger.debug(f"Normalized key {key!r} -> {digest}")
    return digest
