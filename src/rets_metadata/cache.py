"""Caching layer for raw metadata snapshots.

Fetching metadata from a RETS server is slow (seven round trips, often
megabytes of XML), so callers typically persist :meth:`Root.snapshot` and
only refetch when the server publishes a new version.

Provides:
    * In-memory dictionary cache with TTL expiry.
    * Optional Redis-backed distributed cache with graceful local fallback.
    * :func:`load_root` tying a cache to :meth:`Root.is_current`.

Design goals:
    1. Deterministic keys: cache keys are md5 hashes of argument tuples.
    2. Plain data only: snapshots are ``Dict[str, str]`` stored as JSON.
    3. Fail soft: Redis outages automatically revert to the local cache.

Quick examples:

Local cache get/set::

    from rets_metadata.cache import SnapshotCache
    cache = SnapshotCache(default_ttl=5)
    key = cache._make_key('https://rets.example.com/login', 'agent')
    cache.set(key, root.snapshot())

Staleness-aware load::

    from rets_metadata.cache import DistributedSnapshotCache, load_root
    cache = DistributedSnapshotCache(redis_url='redis://localhost:6379/0')
    root = load_root(cache, 'mls-1', session.retrieve_metadata_type,
                     current_version=server_version)
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

# Optional import for the distributed backend
try:  # pragma: no cover - import guarded
    import redis
except ImportError:  # pragma: no cover - if redis not installed
    redis = None  # type: ignore[assignment]

from .containers import ParserConfig
from .root import Fetcher, Root

logger = logging.getLogger(__name__)

Snapshot = Dict[str, str]


def default_cache_ttl() -> float:
    """TTL in seconds, from ``RETS_METADATA_CACHE_TTL`` (default one day)."""
    raw = os.getenv("RETS_METADATA_CACHE_TTL")
    if raw:
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Ignoring invalid RETS_METADATA_CACHE_TTL={raw!r}")
    return 86400.0


@dataclass
class CacheEntry:
    """Cache entry with TTL."""

    data: Any
    timestamp: float = field(default_factory=time.time)
    ttl: float = 3600.0

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return time.time() - self.timestamp > self.ttl


class SnapshotCache:
    """Simple in-memory cache for metadata snapshots.

    Notes:
        Single-thread oriented, like :class:`~rets_metadata.root.Root`.
    """

    def __init__(self, default_ttl: Optional[float] = None):
        """Initialize cache with default TTL in seconds."""
        self.default_ttl = default_ttl if default_ttl is not None else default_cache_ttl()
        self._cache: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def _make_key(self, *args) -> str:
        """Create cache key from arguments."""
        key_data = str(args).encode()
        return hashlib.md5(key_data).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Retrieve a value if present and not expired.

        Args:
            key: Opaque cache key.
        Returns:
            Cached value or None if absent/expired.
        """
        entry = self._cache.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired():
            del self._cache[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """Insert or replace a value in the cache.

        Args:
            key: Cache key.
            data: Arbitrary Python object (stored as-is).
            ttl: Optional time-to-live override in seconds.
        """
        self._cache[key] = CacheEntry(
            data=data, ttl=ttl if ttl is not None else self.default_ttl
        )

    def invalidate(self, key: str) -> None:
        """Remove specific entry from cache."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get current cache statistics."""
        return {
            "cache_size": len(self._cache),
            "hits": self.hits,
            "misses": self.misses,
            "default_ttl": self.default_ttl,
        }


class DistributedSnapshotCache:
    """Redis-backed snapshot cache with automatic local fallback.

    Backend selection when no explicit client is provided:
        1. Real Redis (``redis`` library + reachable server)
        2. In-process :class:`SnapshotCache` only (transparent local fallback)

    Environment variables:
        REDIS_URL    Override Redis connection URL (default: redis://localhost:6379/0)

    Any Redis error flips the cache into local-only mode for the rest of
    its lifetime; the failure is logged at warning level.
    """

    def __init__(
        self,
        default_ttl: Optional[float] = None,
        redis_url: Optional[str] = None,
        redis_prefix: str = "rets:",
        fallback_cache: Optional[SnapshotCache] = None,
        redis_client: Any | None = None,
    ) -> None:
        self.default_ttl = default_ttl if default_ttl is not None else default_cache_ttl()
        self.redis_prefix = redis_prefix
        self.fallback_cache = fallback_cache or SnapshotCache(default_ttl=self.default_ttl)
        self._redis: Any | None = None
        self._redis_available: bool = False

        # Explicit client takes precedence
        if redis_client is not None:
            self._redis = redis_client
            self._redis_available = True
        else:
            self._init_backend(redis_url)

    # ---------------- Internal backend selection helpers -----------------
    def _init_backend(self, redis_url: Optional[str]) -> None:
        if redis is None:
            logger.info("redis not installed; using local snapshot cache")
            return
        url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        try:
            self._redis = redis.from_url(url, decode_responses=False)
            self._redis.ping()  # health probe
            self._redis_available = True
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis unavailable at {url} ({e}); using local snapshot cache")
            self._redis = None
            self._redis_available = False

    def _disable_redis(self, error: Exception) -> None:
        logger.warning(f"Redis error ({error}); falling back to local snapshot cache")
        self._redis_available = False

    def _make_key(self, *parts: Any) -> str:
        raw = str(parts).encode()
        return f"{self.redis_prefix}{hashlib.md5(raw).hexdigest()}"

    @staticmethod
    def _serialize(data: Snapshot) -> bytes:
        return json.dumps(data, sort_keys=True).encode("utf-8")

    @staticmethod
    def _deserialize(blob: Union[bytes, str]) -> Snapshot:
        if isinstance(blob, bytes):
            blob = blob.decode("utf-8")
        return json.loads(blob)

    # ---------------- Core operations -----------------
    def get(self, key: str) -> Optional[Snapshot]:
        if not self._redis_available or self._redis is None:
            return self.fallback_cache.get(key)
        try:
            blob = self._redis.get(self._make_key(key))
        except Exception as e:
            self._disable_redis(e)
            return self.fallback_cache.get(key)
        if blob is None:
            return None
        return self._deserialize(blob)

    def set(self, key: str, data: Snapshot, ttl: Optional[float] = None) -> None:
        effective_ttl = ttl if ttl is not None else self.default_ttl
        if not self._redis_available or self._redis is None:
            self.fallback_cache.set(key, data, ttl)
            return
        try:
            # SETEX rejects expiries below one second
            expiry = max(1, int(effective_ttl))
            self._redis.setex(self._make_key(key), expiry, self._serialize(data))
        except Exception as e:
            self._disable_redis(e)
            self.fallback_cache.set(key, data, ttl)

    def invalidate(self, key: str) -> None:
        if self._redis_available and self._redis is not None:
            try:
                self._redis.delete(self._make_key(key))
            except Exception as e:
                self._disable_redis(e)
        self.fallback_cache.invalidate(key)

    def clear(self) -> None:
        self.fallback_cache.clear()
        if self._redis_available and self._redis is not None:
            try:
                for redis_key in self._redis.scan_iter(f"{self.redis_prefix}*"):
                    self._redis.delete(redis_key)
            except Exception as e:
                self._disable_redis(e)

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "redis_available": self._redis_available,
            "default_ttl": self.default_ttl,
            "fallback_stats": self.fallback_cache.get_cache_stats(),
        }


def load_root(
    cache: Union[SnapshotCache, DistributedSnapshotCache],
    key: str,
    fetcher: Fetcher,
    current_timestamp: Optional[str] = None,
    current_version: Optional[str] = None,
    config: Optional[ParserConfig] = None,
) -> Root:
    """Return a :class:`Root` restored from cache, refetching when stale.

    Args:
        cache: Snapshot cache to read from and write to.
        key: Cache key identifying the server (URL, login, ...).
        fetcher: Fetcher used when the cache misses or is stale.
        current_timestamp: Metadata timestamp the server currently reports.
        current_version: Metadata version the server currently reports.
        config: Optional parser configuration for the returned Root.

    Returns:
        A Root whose sources are loaded; containers and tree build lazily.
    """
    snapshot = cache.get(key)
    if snapshot is not None:
        root = Root(fetcher=fetcher, config=config)
        root.restore(snapshot)
        if root.is_current(current_timestamp, current_version):
            logger.info(f"Using cached metadata for {key}")
            return root
        logger.info(f"Cached metadata for {key} is stale; refetching")
        cache.invalidate(key)
    else:
        logger.info(f"No cached metadata for {key}; fetching")

    root = Root(fetcher=fetcher, config=config)
    root.fetch_sources()
    cache.set(key, root.snapshot())
    return root
