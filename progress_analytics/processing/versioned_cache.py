"""
Redis-backed versioned cache for expensive derived artifacts.

Entries are keyed by (subject, kind) and carry the fingerprint of the source
state they were computed from plus a hard expiry. The volatile tier honours
expiry only; the derived tier also compares the stored fingerprint with the
subject's current one.

Payloads must be JSON-native (dicts, lists, strings, numbers, booleans and
None). Callers always get the decoded JSON form back, whether the value was
just computed or read from Redis.
"""

from __future__ import annotations

import json
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, NamedTuple

import redis.asyncio as redis
import structlog

from progress_analytics.core.config import settings
from progress_analytics.core.errors import (
    CacheBackendUnavailable,
    ConfigurationError,
    DerivedComputationError,
)
from progress_analytics.core.fingerprint import CacheSubject
from progress_analytics.core.observability import (
    record_derived_cache_invalidation,
    record_derived_cache_lookup,
    record_derived_cache_write,
)
from progress_analytics.processing.sources import ProfileFingerprintSource

logger = structlog.get_logger(__name__)

_ENVELOPE_VERSION = "v1"


class CacheTier(StrEnum):
    VOLATILE = "volatile"
    DERIVED = "derived"


class CacheKind(StrEnum):
    """Derived artifacts served through the cache."""

    COMPANY_RESEARCH = "company_research"
    COMPETITIVE_POSITION = "competitive_position"
    PROFILE_ANALYTICS = "profile_analytics"
    JOB_MATCH = "job_match"

    @classmethod
    def parse(cls, value: CacheKind | str) -> CacheKind:
        if isinstance(value, CacheKind):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in cls)
            msg = f"Unknown cache kind: {value!r}. Must be one of {allowed}."
            raise ConfigurationError(msg) from exc

    @property
    def tier(self) -> CacheTier:
        if self is CacheKind.COMPANY_RESEARCH:
            return CacheTier.VOLATILE
        return CacheTier.DERIVED

    def default_ttl_seconds(self) -> int:
        if self is CacheKind.COMPANY_RESEARCH:
            return settings.VOLATILE_CACHE_TTL_SECONDS
        if self is CacheKind.PROFILE_ANALYTICS:
            return settings.PROFILE_ANALYTICS_CACHE_TTL_SECONDS
        return settings.DERIVED_CACHE_TTL_SECONDS


class CacheLookup(NamedTuple):
    payload: Any
    fresh: bool


_MISS = CacheLookup(payload=None, fresh=False)


def _as_subject(subject: CacheSubject | str) -> CacheSubject:
    if isinstance(subject, CacheSubject):
        return subject
    return CacheSubject.parse(subject)
class VersionedCache:
    """One cache abstraction for both tiers; ``tier`` selects fingerprint comparison."""

    _DEGRADE_RETRY_SECONDS = 30

    def __init__(
        self,
        tier: CacheTier | str,
        *,
        fingerprint_source: ProfileFingerprintSource | None = None,
        redis_prefix: str | None = None,
        redis_url: str | None = None,
        redis_client: redis.Redis | None = None,
        wall_time_fn: Callable[[], float] | None = None,
    ) -> None:
        try:
            self.tier = CacheTier(str(tier).strip().lower())
        except ValueError as exc:
            msg = f"Unknown cache tier: {tier!r}"
            raise ConfigurationError(msg) from exc
        if self.tier is CacheTier.DERIVED and fingerprint_source is None:
            msg = "Derived cache tier requires a fingerprint source"
            raise ConfigurationError(msg)

        self.fingerprint_source = fingerprint_source
        self.redis_prefix = (
            settings.CACHE_REDIS_PREFIX if redis_prefix is None else str(redis_prefix).strip()
        )
        if not self.redis_prefix:
            self.redis_prefix = "progress:derived_cache"
        self.redis_url = settings.REDIS_URL if redis_url is None else str(redis_url).strip()
        self._redis_client = redis_client
        self._owns_client = redis_client is None
        self._backend_unavailable_until = 0.0
        # Keys whose last write or removal never reached Redis. Whatever Redis
        # still holds for them is superseded and must not be served.
        self._unconfirmed_keys: set[str] = set()
        self._wall_time_fn = wall_time_fn or time.time

    @staticmethod
    def build_cache_key(*, kind: CacheKind, subject: CacheSubject, redis_prefix: str) -> str:
        return f"{redis_prefix}:{kind.value}:{_ENVELOPE_VERSION}:{subject.key}"

    @property
    def compares_fingerprints(self) -> bool:
        return self.tier is CacheTier.DERIVED

    async def get(self, subject: CacheSubject | str, kind: CacheKind | str) -> CacheLookup:
        """
        Look up an entry and report whether it is still fresh.

        Missing, expired and fingerprint-mismatched entries all come back as
        ``CacheLookup(None, False)``.
        """
        lookup, _fingerprint = await self._lookup(_as_subject(subject), self._resolve_kind(kind))
        return lookup

    async def put(
        self,
        subject: CacheSubject | str,
        kind: CacheKind | str,
        payload: Any,
        ttl_seconds: int | None = None,
        fingerprint: str | None = None,
    ) -> Any:
        """
        Write an entry, superseding any previous one for the same key.

        Returns the payload as it will be read back.

        Raises:
            TypeError: If the payload is not JSON-native
        """
        resolved_subject = _as_subject(subject)
        resolved_kind = self._resolve_kind(kind)
        if self.compares_fingerprints and fingerprint is None:
            fingerprint = await self._current_fingerprint(resolved_subject)
        return await self._write(resolved_subject, resolved_kind, payload, ttl_seconds, fingerprint)

    async def invalidate(self, subject: CacheSubject | str, kind: CacheKind | str) -> bool:
        """
        Remove an entry outright. Returns whether one existed.

        The removal is attempted even while reads are backing off.

        Raises:
            CacheBackendUnavailable: If Redis could not be reached
        """
        resolved_subject = _as_subject(subject)
        resolved_kind = self._resolve_kind(kind)
        key = self.build_cache_key(
            kind=resolved_kind,
            subject=resolved_subject,
            redis_prefix=self.redis_prefix,
        )
        try:
            removed = int(await self._get_redis_client().delete(key) or 0)
        except Exception as exc:
            self._unconfirmed_keys.add(key)
            self._mark_backend_unavailable(self._wall_time_fn())
            logger.warning(
                "Derived cache invalidation failed",
                kind=resolved_kind.value,
                subject_key=resolved_subject.key,
            )
            msg = f"Could not remove {resolved_kind.value} for subject {resolved_subject.key}"
            raise CacheBackendUnavailable(msg) from exc

        self._unconfirmed_keys.discard(key)
        record_derived_cache_invalidation(kind=resolved_kind.value)
        logger.info(
            "Derived cache entry invalidated",
            kind=resolved_kind.value,
            subject_key=resolved_subject.key,
            existed=removed > 0,
        )
        return removed > 0

    async def get_or_compute(
        self,
        subject: CacheSubject | str,
        kind: CacheKind | str,
        compute_fn: Callable[[], Awaitable[Any]],
        ttl_seconds: int | None = None,
    ) -> Any:
        """
        Return a fresh cached payload, computing and storing it when needed.

        The fingerprint is read before ``compute_fn`` runs, so a source change
        during computation leaves the new entry stale rather than wrongly fresh.

        Raises:
            DerivedComputationError: If ``compute_fn`` fails or returns a
                payload that is not JSON-native
        """
        resolved_subject = _as_subject(subject)
        resolved_kind = self._resolve_kind(kind)
        lookup, fingerprint = await self._lookup(resolved_subject, resolved_kind)
        if lookup.fresh:
            return lookup.payload

        try:
            payload = await compute_fn()
            return await self._write(
                resolved_subject,
                resolved_kind,
                payload,
                ttl_seconds,
                fingerprint,
            )
        except Exception as exc:
            logger.exception(
                "Derived computation failed",
                kind=resolved_kind.value,
                subject_key=resolved_subject.key,
            )
            raise DerivedComputationError(resolved_kind.value, resolved_subject.key) from exc

    async def close(self) -> None:
        """Release the Redis connection pool this cache created itself."""
        if self._owns_client and self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None

    def _resolve_kind(self, kind: CacheKind | str) -> CacheKind:
        resolved = CacheKind.parse(kind)
        if resolved.tier is not self.tier:
            msg = f"Cache kind {resolved.value} belongs to the {resolved.tier.value} tier"
            raise ConfigurationError(msg)
        return resolved

    async def _current_fingerprint(self, subject: CacheSubject) -> str | None:
        if not self.compares_fingerprints or self.fingerprint_source is None:
            return None
        return await self.fingerprint_source.current_fingerprint(subject)

    async def _lookup(
        self,
        subject: CacheSubject,
        kind: CacheKind,
    ) -> tuple[CacheLookup, str | None]:
        fingerprint = await self._current_fingerprint(subject)
        now = self._wall_time_fn()
        if now < self._backend_unavailable_until:
            record_derived_cache_lookup(kind=kind.value, result="miss")
            return _MISS, fingerprint

        key = self.build_cache_key(kind=kind, subject=subject, redis_prefix=self.redis_prefix)
        if key in self._unconfirmed_keys:
            await self._discard_superseded(key, now)
            record_derived_cache_lookup(kind=kind.value, result="miss")
            return _MISS, fingerprint

        try:
            raw = await self._get_redis_client().get(key)
        except Exception:
            self._mark_backend_unavailable(now)
            record_derived_cache_lookup(kind=kind.value, result="miss")
            logger.warning(
                "Derived cache backend unavailable; bypassing",
                kind=kind.value,
                retry_after_seconds=self._DEGRADE_RETRY_SECONDS,
            )
            return _MISS, fingerprint

        envelope = self._decode_envelope(raw)
        if envelope is None:
            record_derived_cache_lookup(kind=kind.value, result="miss")
            return _MISS, fingerprint

        if now > float(envelope.get("expires_at", 0.0)):
            record_derived_cache_lookup(kind=kind.value, result="expired")
            return _MISS, fingerprint

        if self.compares_fingerprints and envelope.get("fingerprint") != fingerprint:
            record_derived_cache_lookup(kind=kind.value, result="stale")
            logger.debug(
                "Derived cache entry superseded by source change",
                kind=kind.value,
                subject_key=subject.key,
            )
            return _MISS, fingerprint

        record_derived_cache_lookup(kind=kind.value, result="hit")
        return CacheLookup(payload=envelope.get("payload"), fresh=True), fingerprint

    async def _write(
        self,
        subject: CacheSubject,
        kind: CacheKind,
        payload: Any,
        ttl_seconds: int | None,
        fingerprint: str | None,
    ) -> Any:
        now = self._wall_time_fn()
        ttl = max(1, kind.default_ttl_seconds() if ttl_seconds is None else int(ttl_seconds))
        key = self.build_cache_key(kind=kind, subject=subject, redis_prefix=self.redis_prefix)
        envelope = {
            "payload": payload,
            "fingerprint": fingerprint,
            "expires_at": now + ttl,
            "written_at": now,
        }
        serialized = self._serialize_envelope(envelope)
        stored_payload = json.loads(serialized)["payload"]

        if now < self._backend_unavailable_until:
            self._unconfirmed_keys.add(key)
            return stored_payload

        try:
            await self._get_redis_client().set(key, serialized, ex=ttl)
        except Exception:
            self._unconfirmed_keys.add(key)
            self._mark_backend_unavailable(now)
            logger.warning(
                "Derived cache write failed; bypassing",
                kind=kind.value,
                retry_after_seconds=self._DEGRADE_RETRY_SECONDS,
            )
            return stored_payload

        self._unconfirmed_keys.discard(key)
        record_derived_cache_write(kind=kind.value)
        return stored_payload

    async def _discard_superseded(self, key: str, now: float) -> None:
        try:
            await self._get_redis_client().delete(key)
        except Exception:
            self._mark_backend_unavailable(now)
            logger.warning(
                "Could not drop superseded cache entry",
                key=key,
                retry_after_seconds=self._DEGRADE_RETRY_SECONDS,
            )
            return
        self._unconfirmed_keys.discard(key)

    def _mark_backend_unavailable(self, now: float) -> None:
        self._backend_unavailable_until = now + self._DEGRADE_RETRY_SECONDS

    def _get_redis_client(self) -> redis.Redis:
        if self._redis_client is None:
            self._redis_client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=0.1,
                socket_timeout=0.1,
            )
        return self._redis_client

    @staticmethod
    def _decode_envelope(raw: Any) -> dict[str, Any] | None:
        if not isinstance(raw, str) or not raw.strip():
            return None
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return envelope if isinstance(envelope, dict) else None

    @staticmethod
    def _serialize_envelope(envelope: dict[str, Any]) -> str:
        return json.dumps(
            envelope,
            ensure_ascii=True,
            sort_keys=True,
            separators=(",", ":"),
        )
