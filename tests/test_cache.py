import hashlib

import pytest

from gallery_api.datastore.store import MemoryStore
from gallery_api.services.cache import (
    CACHE_PREFIX,
    CacheCategory,
    CacheManager,
    case_view_cache_key,
    cases_by_procedure_cache_key,
    cases_cache_key,
    category_pattern,
    sidebar_cache_key,
)


@pytest.fixture
def store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def cache(store, clock):
    return CacheManager(store=store, max_size=3, clock=clock)


class TestKeys:
    def test_generate_key_is_namespaced(self, cache):
        assert cache.generate_key(CacheCategory.GET, "cases/42") == "gallery_api_get_cases/42"

    def test_generate_key_sorts_params(self, cache):
        a = cache.generate_key(CacheCategory.GET, "cases", {"b": 2, "a": 1})
        b = cache.generate_key(CacheCategory.GET, "cases", {"a": 1, "b": 2})
        assert a == b == "gallery_api_get_cases?a=1&b=2"

    def test_long_keys_are_hashed(self, cache):
        key = cache.generate_key(CacheCategory.GET, "x" * 300)
        assert key.startswith(category_pattern(CacheCategory.GET))
        assert len(key) == len("gallery_api_get_") + 16

    def test_cases_key_hashes_token_and_normalizes_procedures(self):
        token_hash = hashlib.md5(b"secret").hexdigest()

        key = cases_cache_key("secret", "111", procedure_ids=[9, 0, 3, -1], page=2)

        assert key == f"gallery_api_cases_{token_hash}_111_procs_3_9_page_2"
        assert "secret" not in key
        assert cases_cache_key("secret", "111", [3, 9]) == cases_cache_key(
            "secret", "111", [9, 3]
        )

    def test_other_category_keys(self):
        assert sidebar_cache_key() == "gallery_api_sidebar_navigation"
        assert case_view_cache_key("Breast Augmentation", "42") == (
            "gallery_api_case_view_breast-augmentation_42"
        )
        assert case_view_cache_key("", " ") == "gallery_api_case_view_unknown_unknown"
        assert cases_by_procedure_cache_key("Tummy Tuck").startswith(
            category_pattern(CacheCategory.CASES)
        )


class TestTwoTiers:
    async def test_set_then_get_from_memory(self, cache):
        await cache.set("gallery_api_get_a", {"v": 1}, ttl_seconds=60)

        assert await cache.get("gallery_api_get_a") == {"v": 1}
        assert cache.get_stats().hits == 1

    async def test_miss_counts(self, cache):
        assert await cache.get("gallery_api_get_nope") is None
        assert cache.get_stats().misses == 1

    async def test_persistent_hit_is_promoted(self, store, clock):
        first = CacheManager(store=store, clock=clock)
        await first.set("gallery_api_get_a", [1, 2], ttl_seconds=60)

        second = CacheManager(store=store, clock=clock)
        assert await second.get("gallery_api_get_a") == [1, 2]
        assert await second.get("gallery_api_get_a") == [1, 2]

        stats = second.get_stats()
        assert stats.persistent_hits == 1
        assert stats.hits == 1
        assert stats.size == 1

    async def test_memory_entry_expires_with_ttl(self, cache, clock):
        await cache.set("gallery_api_get_a", "v", ttl_seconds=300)

        clock.advance(299)
        assert await cache.get("gallery_api_get_a") == "v"

        clock.advance(1)
        assert await cache.get("gallery_api_get_a") is None

    async def test_oldest_entry_is_evicted(self, cache, clock):
        for name in ("a", "b", "c"):
            await cache.set(f"gallery_api_get_{name}", name, ttl_seconds=0)
            clock.advance(1)

        await cache.set("gallery_api_get_d", "d", ttl_seconds=0)

        stats = cache.get_stats()
        assert stats.size == 3
        assert stats.evictions == 1

    async def test_delete_pattern_clears_both_tiers(self, cache, store):
        await cache.set("gallery_api_get_cases/1", 1)
        await cache.set("gallery_api_get_cases/2", 2)
        await cache.set("gallery_api_sidebar_navigation", 3)

        removed = await cache.delete("gallery_api_get_")

        assert removed == 2
        assert await store.get("gallery_api_get_cases/1") is None
        assert await cache.get("gallery_api_get_cases/2") is None
        assert await cache.get("gallery_api_sidebar_navigation") == 3

    async def test_delete_pattern_with_nothing_matching_is_harmless(self, cache):
        assert await cache.delete("gallery_api_case_view_") == 0
        assert await cache.delete("gallery_api_case_view_") == 0

    async def test_clear_only_removes_namespace(self, cache, store):
        await cache.set("gallery_api_get_a", 1)
        await store.set("other_app_key", "keep")

        await cache.clear()

        assert cache.get_stats().size == 0
        assert await store.get("gallery_api_get_a") is None
        assert await store.get("other_app_key") == "keep"
        assert CACHE_PREFIX == "gallery_api_"

    async def test_memory_only_cache(self, clock):
        cache = CacheManager(clock=clock)
        assert await cache.set("gallery_api_get_a", 1) is True
        assert await cache.get("gallery_api_get_a") == 1

    def test_stats_to_dict(self, cache):
        data = cache.get_stats().to_dict()
        assert data["hit_rate"] == "0.00%"
        assert data["max_size"] == 3


class BrokenStore:
    """Persistent store whose every operation fails."""

    async def get(self, key):
        raise RuntimeError("database is locked")

    async def set(self, key, value, ttl_seconds=0):
        raise RuntimeError("database is locked")

    async def delete(self, key):
        raise RuntimeError("database is locked")

    async def delete_by_pattern(self, pattern):
        raise RuntimeError("database is locked")


class TestIsolation:
    async def test_mutating_stored_value_does_not_change_cache(self, cache):
        value = {"tags": ["a"]}
        await cache.set("gallery_api_get_a", value, ttl_seconds=60)

        value["tags"].append("changed")

        assert await cache.get("gallery_api_get_a") == {"tags": ["a"]}

    async def test_mutating_returned_value_does_not_change_cache(self, cache):
        await cache.set("gallery_api_get_a", {"tags": ["a"]}, ttl_seconds=60)

        first = await cache.get("gallery_api_get_a")
        first["tags"].append("changed")

        assert await cache.get("gallery_api_get_a") == {"tags": ["a"]}

    async def test_persistent_hit_is_a_copy(self, store, clock):
        await CacheManager(store=store, clock=clock).set(
            "gallery_api_get_a", {"tags": ["a"]}, ttl_seconds=60
        )
        cache = CacheManager(store=store, clock=clock)

        (await cache.get("gallery_api_get_a"))["tags"].append("changed")

        assert await cache.get("gallery_api_get_a") == {"tags": ["a"]}


class TestStoreFailures:
    async def test_read_failure_is_a_miss(self, clock):
        cache = CacheManager(store=BrokenStore(), clock=clock)

        assert await cache.get("gallery_api_get_a") is None
        assert cache.get_stats().misses == 1

    async def test_write_failure_keeps_memory_entry(self, clock):
        cache = CacheManager(store=BrokenStore(), clock=clock)

        assert await cache.set("gallery_api_get_a", 1, ttl_seconds=60) is False
        assert await cache.get("gallery_api_get_a") == 1

    async def test_delete_and_clear_still_empty_memory(self, clock):
        cache = CacheManager(store=BrokenStore(), clock=clock)
        await cache.set("gallery_api_get_a", 1)
        await cache.set("gallery_api_get_b", 2)

        assert await cache.delete("gallery_api_get_a") == 1
        await cache.clear()

        assert cache.get_stats().size == 0
