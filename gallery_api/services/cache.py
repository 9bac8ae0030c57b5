"""
CacheManager - Two-tier response cache.

Features:
- In-process L1 map with oldest-first eviction
- Persistent L2 tier (any PersistentStore) with TTL enforced by the store
- Namespaced keys per cache category for pattern invalidation
- Invalidation clears both tiers before returning

The L1 map is bounded and also honors each entry's TTL, so in a long-lived
process an entry can leave memory through expiry or eviction, not only through
an explicit clear. L1 and L2 expire an entry at the same instant.

Values are copied on the way in and on the way out; callers never hold a
reference to a cached object. Persistent-store errors are logged and treated
as a miss (reads) or a failed write; they never escape the cache.
"""

import asyncio
import copy
import hashlib
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from loguru import logger

from gallery_api.datastore.store import PersistentStore

CACHE_PREFIX = "gallery_api_"

# Default TTL (seconds)
CACHE_TTL_MEDIUM = 1800


class CacheCategory(str, Enum):
    """Logical cache categories, used as key namespaces."""

    GET = "get"
    CASES = "cases"
    CASE_VIEW = "case_view"
    SIDEBAR = "sidebar"


def category_pattern(category: CacheCategory | str) -> str:
    """Key substring matching every entry of a category."""
    value = category.value if isinstance(category, CacheCategory) else category
    return f"{CACHE_PREFIX}{value}_"


def _slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "unknown"


def sidebar_cache_key() -> str:
    return f"{category_pattern(CacheCategory.SIDEBAR)}navigation"


def cases_cache_key(
    api_token: str,
    website_property_id: str,
    procedure_ids: list[int] | None = None,
    page: int = 1,
) -> str:
    """
    Cache key for a cases listing.

    The token is hashed so it never appears in the key. Procedure IDs are
    sorted and non-positive IDs dropped so equivalent filters share a key.
    """
    parts = [
        category_pattern(CacheCategory.CASES).rstrip("_"),
        hashlib.md5(api_token.encode()).hexdigest(),
        re.sub(r"[^a-z0-9_\-]", "", str(website_property_id).lower()),
    ]

    clean_ids = sorted(int(pid) for pid in procedure_ids or [] if int(pid) > 0)
    if clean_ids:
        parts.append("procs_" + "_".join(str(pid) for pid in clean_ids))

    if page > 1:
        parts.append(f"page_{page}")

    return "_".join(parts)


def case_view_cache_key(procedure_slug: str, case_suffix: str) -> str:
    return (
        f"{category_pattern(CacheCategory.CASE_VIEW)}"
        f"{_slug(procedure_slug)}_{case_suffix.strip() or 'unknown'}"
    )


def cases_by_procedure_cache_key(procedure_name: str) -> str:
    return f"{category_pattern(CacheCategory.CASES)}{_slug(procedure_name)}"


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""

    key: str
    value: Any
    stored_at: float
    ttl_seconds: int

    def is_expired(self, now: float) -> bool:
        """Entries with ttl_seconds <= 0 never expire."""
        return self.ttl_seconds > 0 and now >= self.stored_at + self.ttl_seconds

    def to_envelope(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "stored_at": self.stored_at,
            "ttl_seconds": self.ttl_seconds,
        }


class CacheManager:
    """
    Two-tier cache manager.

    Usage:
        cache = CacheManager(store=MemoryStore())

        key = cache.generate_key(CacheCategory.GET, "cases/42")
        value = await cache.get(key)
        if value is None:
            value = await fetch()
            await cache.set(key, value, ttl_seconds=300)
    """

    def __init__(
        self,
        store: PersistentStore | None = None,
        max_size: int = 500,
        clock: Callable[[], float] = time.time,
        debug: bool = False,
    ):
        self._memory: dict[str, CacheEntry] = {}
        self._store = store
        self._max_size = max_size
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    def generate_key(
        self,
        category: CacheCategory | str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> str:
        """Generate a namespaced key from a path and params."""
        if params:
            sorted_params = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
            full_key = f"{path}?{sorted_params}"
        else:
            full_key = path

        prefix = category_pattern(category)

        # Hash long keys
        if len(full_key) > 200:
            hash_val = hashlib.md5(full_key.encode()).hexdigest()[:16]
            return f"{prefix}{hash_val}"

        return f"{prefix}{full_key}"

    async def get(self, key: str) -> Any | None:
        """
        Get a value, memory tier first.

        A persistent hit is promoted into memory with its remaining TTL.
        """
        async with self._lock:
            now = self._clock()
            entry = self._memory.get(key)

            if entry is not None:
                if not entry.is_expired(now):
                    self._stats.hits += 1
                    self._log(f"HIT: {key[:50]}...")
                    return copy.deepcopy(entry.value)
                del self._memory[key]
                self._log(f"EXPIRED: {key[:50]}...")

            if self._store is None:
                self._stats.misses += 1
                self._log(f"MISS: {key[:50]}...")
                return None

            try:
                envelope = await self._store.get(key)
            except Exception as e:
                logger.warning(f"Cache store read failed for {key[:50]}: {e}")
                envelope = None

            if not isinstance(envelope, dict) or "value" not in envelope:
                self._stats.misses += 1
                self._log(f"MISS: {key[:50]}...")
                return None

            entry = CacheEntry(
                key=key,
                value=envelope["value"],
                stored_at=float(envelope.get("stored_at", now)),
                ttl_seconds=int(envelope.get("ttl_seconds", 0)),
            )
            if entry.is_expired(now):
                self._stats.misses += 1
                return None

            self._put_memory(entry)
            self._stats.persistent_hits += 1
            self._log(f"PERSISTENT HIT: {key[:50]}...")
            return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl_seconds: int = CACHE_TTL_MEDIUM) -> bool:
        """
        Store a copy of value in both tiers.

        Returns False when the persistent write failed; the memory tier still
        holds the entry.
        """
        entry = CacheEntry(
            key=key,
            value=copy.deepcopy(value),
            stored_at=self._clock(),
            ttl_seconds=ttl_seconds,
        )

        async with self._lock:
            self._put_memory(entry)
            stored = True
            if self._store is not None:
                try:
                    stored = await self._store.set(
                        key, entry.to_envelope(), ttl_seconds
                    )
                except Exception as e:
                    logger.warning(f"Cache store write failed for {key[:50]}: {e}")
                    stored = False
            self._log(f"SET: {key[:50]}... (TTL: {ttl_seconds}s)")
            return stored

    async def delete(self, key_or_pattern: str) -> int:
        """
        Invalidate every key containing key_or_pattern, in both tiers.

        Returns:
            Number of in-memory entries removed
        """
        async with self._lock:
            keys_to_delete = [k for k in self._memory if key_or_pattern in k]
            for key in keys_to_delete:
                del self._memory[key]

            await self._delete_stored(key_or_pattern)

            if keys_to_delete:
                self._log(
                    f"INVALIDATE: {len(keys_to_delete)} entries matching '{key_or_pattern}'"
                )
            return len(keys_to_delete)

    async def clear(self) -> None:
        """Clear the whole cache namespace from both tiers."""
        async with self._lock:
            count = len(self._memory)
            self._memory.clear()
            await self._delete_stored(CACHE_PREFIX)
            self._log(f"CLEAR: {count} entries removed")

    async def _delete_stored(self, pattern: str) -> None:
        if self._store is None:
            return
        try:
            await self._store.delete_by_pattern(pattern)
        except Exception as e:
            logger.warning(f"Cache store delete failed for '{pattern}': {e}")

    def _put_memory(self, entry: CacheEntry) -> None:
        if len(self._memory) >= self._max_size and entry.key not in self._memory:
            self._evict_oldest()
        self._memory[entry.key] = entry

    def _evict_oldest(self) -> None:
        if not self._memory:
            return

        oldest_key = min(
            self._memory.keys(),
            key=lambda k: self._memory[k].stored_at,
        )
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:50]}...")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[CacheManager] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    persistent_hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.persistent_hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits + self.persistent_hits) / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "persistent_hits": self.persistent_hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
