"""
Stable hashing utilities for content-addressable keys.

Uses JSON canonicalization for dicts/lists and NFC normalization for strings.
"""

import hashlib
import json
import unicodedata


def stable_hash(obj: dict | list | str | bytes, digest_size: int = 32) -> str:
    """
    Compute stable hash of an object.

    - Dicts: sorted by keys, then JSON-serialized
    - Lists: JSON-serialized
    - Strings: UTF-8, NFC normalized
    - Bytes: used directly

    Returns:
        Hex string (blake2b, ``digest_size * 2`` characters)

    Examples:
        >>> stable_hash({"b": 2, "a": 1}) == stable_hash({"a": 1, "b": 2})
        True
    """
    if isinstance(obj, (dict, list)):
        canonical = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        data = canonical.encode("utf-8")
    elif isinstance(obj, str):
        data = unicodedata.normalize("NFC", obj).encode("utf-8")
    elif isinstance(obj, bytes):
        data = obj
    else:
        raise TypeError(f"Cannot hash type {type(obj)}: {obj}")

    return hashlib.blake2b(data, digest_size=digest_size).hexdigest()


def memory_key(owner: str, content: str) -> str:
    """
    Storage key for the ``(owner, content)`` dedupe pair.

    The owner part is a fixed-width prefix so every record of one owner can
    be listed with a single prefix scan. Content is hashed as raw UTF-8, so
    only an exact string match dedupes.
    """
    return f"{owner_prefix(owner)}{stable_hash(content.encode('utf-8'))}"


def owner_prefix(owner: str) -> str:
    return f"{stable_hash(owner, digest_size=8)}:"
