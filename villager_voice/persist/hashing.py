"""
Stable hashing utilities for content-addressable caching.

Provides deterministic hashing of dicts, lists, strings, and bytes, and
the fingerprint format shared by every cached stage.
Uses JSON canonicalization for dicts/lists and UTF-8 normalization for strings.
"""

import hashlib
import json
import unicodedata


def stable_hash(obj: dict | list | str | bytes) -> str:
    """
    Compute stable hash of an object.
    
    - Dicts/lists: JSON-serialized with sorted keys
    - Strings: UTF-8 normalized (NFC)
    - Bytes: used directly
    
    Returns:
        64-character hex string (blake2b)
    
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
    
    h = hashlib.blake2b(data, digest_size=32)
    return h.hexdigest()


def content_hash(data: bytes) -> str:
    """Hash raw bytes; this is the identity of an uploaded payload."""
    return stable_hash(data)


def fingerprint(stage: str, identity: str) -> str:
    """
    Build the cache key for a stage run.
    
    Args:
        stage: Stage name (ingest, separate, convert)
        identity: Content hash for raw bytes, verbatim token for references
    
    Returns:
        ``"<stage>:<identity>"``
    
    Example:
        >>> fingerprint("convert", "vocals-1700000000000-ab12cd34.wav")
        'convert:vocals-1700000000000-ab12cd34.wav'
    """
    if not stage:
        raise ValueError("stage name is required")
    if not identity:
        raise ValueError("input identity is required")
    return f"{stage}:{identity}"
