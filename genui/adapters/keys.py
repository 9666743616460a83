from __future__ import annotations
"""Deterministic cache-key derivation.

A key is the SHA-256 hex digest of a canonical JSON array
``[input, intent, model, version]``. Mapping keys are sorted and
separators fixed, so two structurally equal inputs always hash the same.
"""

import hashlib
import json
from typing import Any

from core.errors import SerializationError, truncate

__all__ = ["canonical_json", "derive_key", "KeyDeriver"]


def _normalize(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def canonical_json(value: Any) -> str:
    """Stable JSON rendering; raises SerializationError instead of guessing."""
    try:
        return json.dumps(
            value,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(
            f"Input cannot be canonically serialized: {e}",
            {"preview": truncate(value)},
        ) from e


def derive_key(input_payload: Any, intent: str, model: str, version: str) -> str:
    material = canonical_json(
        [_normalize(input_payload), _normalize(intent), model, version]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


class KeyDeriver:
    """Binds the pipeline version so callers only pass the request."""

    def __init__(self, version: str = "v1.0") -> None:
        self.version = version

    def derive(self, request: Any) -> str:
        return derive_key(request.input, request.intent, request.model, self.version)
