"""
Fingerprints of mutable source state, used to detect stale cache entries.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

FINGERPRINT_LENGTH = 16
FINGERPRINT_VERSION = "v1"


@dataclass(slots=True, frozen=True)
class CacheSubject:
    """What a cache entry describes: a member, or a member paired with a related record."""

    entity_id: UUID | str
    related_id: UUID | str | None = None

    @property
    def key(self) -> str:
        if self.related_id is None:
            return str(self.entity_id)
        return f"{self.entity_id}:{self.related_id}"

    @property
    def is_composite(self) -> bool:
        return self.related_id is not None

    @classmethod
    def parse(cls, key: str) -> CacheSubject:
        entity_id, _sep, related_id = key.strip().partition(":")
        if not entity_id:
            msg = f"Invalid cache subject key: {key!r}"
            raise ValueError(msg)
        return cls(entity_id=entity_id, related_id=related_id or None)


def _serialize_state(state: Any) -> str:
    return json.dumps(
        state,
        ensure_ascii=True,
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


def compute_fingerprint(*states: Mapping[str, Any] | None) -> str:
    """
    Deterministic short token for one or more source-state mappings.

    Key order does not matter; any value change does. A missing state
    (``None``) hashes differently from an empty one.

    Examples:
        >>> compute_fingerprint({"a": 1, "b": 2}) == compute_fingerprint({"b": 2, "a": 1})
        True
    """
    digest = hashlib.sha256(FINGERPRINT_VERSION.encode("utf-8"))
    for state in states:
        digest.update(b"\x1e")
        digest.update(_serialize_state(state).encode("utf-8"))
    return digest.hexdigest()[:FINGERPRINT_LENGTH]
