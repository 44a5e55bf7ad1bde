"""
Version lineage kept as an arena with a parent index.

Document versions point at an immutable parent id. Root, ancestor and family
queries walk the index iteratively and stop at ``max_depth``.

This is a library helper for host code that keeps versioned documents (for
example resume versions). Load the (version_id, parent_id) rows with
``VersionArena.from_pairs`` and query in memory; the snapshot and cache paths
of this package do not use it.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from progress_analytics.core.errors import LineageError

VersionId = TypeVar("VersionId", bound=Hashable)

DEFAULT_MAX_DEPTH = 256


@dataclass(slots=True)
class VersionArena(Generic[VersionId]):
    """Parent-indexed store of versions."""

    max_depth: int = DEFAULT_MAX_DEPTH
    _parents: dict[VersionId, VersionId | None] = field(default_factory=dict)
    _children: dict[VersionId, list[VersionId]] = field(default_factory=dict)

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[VersionId, VersionId | None]],
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> VersionArena[VersionId]:
        """Build an arena from (version, parent) rows in any order."""
        arena: VersionArena[VersionId] = cls(max_depth=max_depth)
        pending = list(pairs)
        known = {version for version, _parent in pending}
        for version, parent in pending:
            if parent is not None and parent not in known:
                msg = f"Version {version!r} references unknown parent {parent!r}"
                raise LineageError(msg)
            arena._parents[version] = parent
            arena._children.setdefault(version, [])
        for version, parent in pending:
            if parent is not None:
                arena._children[parent].append(version)
        return arena

    def __contains__(self, version: object) -> bool:
        return version in self._parents

    def __len__(self) -> int:
        return len(self._parents)

    def add(self, version: VersionId, parent: VersionId | None = None) -> None:
        if version in self._parents:
            msg = f"Version {version!r} already recorded"
            raise LineageError(msg)
        if parent is not None and parent not in self._parents:
            msg = f"Version {version!r} references unknown parent {parent!r}"
            raise LineageError(msg)
        self._parents[version] = parent
        self._children[version] = []
        if parent is not None:
            self._children[parent].append(version)

    def parent_of(self, version: VersionId) -> VersionId | None:
        self._require(version)
        return self._parents[version]

    def ancestors(self, version: VersionId) -> list[VersionId]:
        """Parents from nearest to root, excluding ``version`` itself."""
        self._require(version)
        chain: list[VersionId] = []
        seen = {version}
        current = self._parents[version]
        while current is not None:
            if current in seen:
                msg = f"Cycle detected in lineage of {version!r}"
                raise LineageError(msg)
            if len(chain) >= self.max_depth:
                msg = f"Lineage of {version!r} exceeds max depth {self.max_depth}"
                raise LineageError(msg)
            seen.add(current)
            chain.append(current)
            current = self._parents[current]
        return chain

    def root_of(self, version: VersionId) -> VersionId:
        chain = self.ancestors(version)
        return chain[-1] if chain else version

    def family(self, version: VersionId) -> list[VersionId]:
        """Every version sharing ``version``'s root, breadth-first from the root."""
        root = self.root_of(version)
        ordered: list[VersionId] = []
        queue: deque[tuple[VersionId, int]] = deque([(root, 0)])
        seen: set[VersionId] = set()
        while queue:
            current, depth = queue.popleft()
            if current in seen:
                continue
            if depth > self.max_depth:
                msg = f"Family of {root!r} exceeds max depth {self.max_depth}"
                raise LineageError(msg)
            seen.add(current)
            ordered.append(current)
            queue.extend((child, depth + 1) for child in self._children.get(current, []))
        return ordered

    def _require(self, version: VersionId) -> None:
        if version not in self._parents:
            msg = f"Unknown version {version!r}"
            raise LineageError(msg)
