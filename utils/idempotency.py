"""
Deterministic idempotency keys

A key is the SHA-256 hex digest of a canonical JSON rendering (sorted keys at
every level, compact separators). FNV-1a is used only when the runtime
refuses SHA-256.
"""

import hashlib
import json
import logging
from dataclasses import asdict, is_dataclass
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    raise TypeError(f"Object of type {type(value).__name__} is not canonicalizable")


def canonicalize(value: Any) -> str:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_default,
    )


def fnv1a_32(data: bytes) -> str:
    h = FNV_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return format(h, "x")


def derive_key(value: Any) -> str:
    """Stable key for `value`; equal for objects that differ only in key order."""
    data = canonicalize(value).encode("utf-8")
    try:
        digest = hashlib.new("sha256")
    except ValueError:
        logger.warning("sha256 unavailable, using FNV-1a idempotency keys")
        return fnv1a_32(data)
    digest.update(data)
    return digest.hexdigest()
