"""
Canonical serialization of entity payloads.

Two entity documents that differ only in key order or whitespace produce the
same canonical bytes and therefore the same derived key. The encoding is
compact JSON with keys sorted at every level, UTF-8 without ASCII escaping.
"""

import hashlib
import json
import math
from typing import Any

from bipkeychain.config import MAX_ENTITY_NESTING
from bipkeychain.lib.errors import MalformedEntity
from bipkeychain.models import KeyDerivation


def _check_text(text: str, path: str) -> None:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        raise MalformedEntity(f"string at {path} is not valid UTF-8 (lone surrogate)")


def _check_canonicalizable(value: Any, path: str = "$", depth: int = 0) -> None:
    """Reject values that have no single JSON representation."""
    if depth > MAX_ENTITY_NESTING:
        raise MalformedEntity(
            f"entity nested deeper than {MAX_ENTITY_NESTING} levels at {path}"
        )
    if isinstance(value, str):
        _check_text(value, path)
        return
    if value is None or isinstance(value, (bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise MalformedEntity(f"non-finite number at {path}")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise MalformedEntity(
                    f"object key {key!r} at {path} is not a string"
                )
            _check_text(key, f"{path} (key)")
            _check_canonicalizable(item, f"{path}.{key}", depth + 1)
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_canonicalizable(item, f"{path}[{i}]", depth + 1)
        return
    raise MalformedEntity(f"unsupported type {type(value).__name__} at {path}")


def canonicalize(value: Any) -> bytes:
    """
    Serialize a JSON-compatible value to canonical bytes.

    Args:
        value: Parsed JSON value (dict, list, str, int, float, bool, None)

    Returns:
        Canonical UTF-8 bytes

    Raises:
        MalformedEntity: If the value contains non-finite numbers, non-string
            object keys, lone surrogates, types JSON cannot represent, or
            nesting deeper than MAX_ENTITY_NESTING
    """
    _check_canonicalizable(value)
    text = json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return text.encode("utf-8")


def canonical_entity_bytes(key_derivation: KeyDerivation) -> bytes:
    """Canonical bytes of the hashed payload. Purpose and metadata are excluded."""
    return canonicalize(key_derivation.entity)


def entity_id(canonical_bytes: bytes) -> str:
    """Short, non-secret identifier for an entity payload."""
    return hashlib.sha256(canonical_bytes).hexdigest()[:16]


def check_labels(key_derivation: KeyDerivation) -> None:
    """
    Validate purpose and metadata.

    They are never hashed, but they are still written out by the output
    encoder, so they must satisfy the same JSON rules as the entity.
    """
    _check_canonicalizable(key_derivation.purpose, "$purpose")
    _check_canonicalizable(key_derivation.metadata, "$metadata")
