from __future__ import annotations

import hashlib
from enum import Enum
from typing import Any

import rfc8785

from .models import Diagram

# JSON-primitive types that rfc8785 can serialize directly.
_PASSTHROUGH_TYPES = (bool, int, float, str, type(None))


def _normalize_for_jcs(value: Any) -> bool | int | float | str | None | list[Any] | dict[str, Any]:
    """Recursively convert enums and containers into JSON-primitive types.

    Raises:
        TypeError: If value contains a type that cannot be converted to JSON.
    """
    if isinstance(value, Enum):
        return _normalize_for_jcs(value.value)

    if isinstance(value, _PASSTHROUGH_TYPES):
        return value

    if isinstance(value, dict):
        return {str(k): _normalize_for_jcs(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_normalize_for_jcs(item) for item in value]

    raise TypeError(
        f"Cannot serialize type {type(value).__name__} to canonical JSON. "
        f"Convert to a JSON-compatible type first."
    )


def to_canonical_json(value: Any) -> str:
    """Serialize a value to deterministic, byte-for-byte reproducible JSON per RFC 8785."""
    normalized = _normalize_for_jcs(value)
    return rfc8785.dumps(normalized).decode("utf-8")


def content_fingerprint(diagram: Diagram) -> str:
    """SHA-256 over the canonical identity and content of *diagram*.

    Location, references and metadata are excluded so the fingerprint is
    stable across promotion.
    """
    payload = {
        "diagram_type": diagram.diagram_type,
        "name": diagram.name,
        "version": diagram.version,
        "content": diagram.content,
    }
    return hashlib.sha256(to_canonical_json(payload).encode("utf-8")).hexdigest()
