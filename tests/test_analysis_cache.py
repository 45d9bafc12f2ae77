"""Tests for the analysis result cache."""

from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from snapmeal_api.models.nutrition import NutritionAnalysisResult
from snapmeal_api.models.provider_config import ProviderKind
from snapmeal_api.services.analysis_cache import AnalysisCache, fingerprint_for


class FakeClock:
    """Controllable clock for expiry tests."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_result(name: str = "Oatmeal", calories: int = 150) -> NutritionAnalysisResult:
    return NutritionAnalysisResult(food_name=name, calories=calories, protein=5, carbs=27, fat=3)


class TestFingerprint:
    def test_fingerprint_is_128_bit_prefix(self):
        content_hash = "ab" * 32
        assert fingerprint_for(content_hash) == "ab" * 16


class TestAnalysisCache:
    """Tests for AnalysisCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return AnalysisCache(ttl_seconds=60, max_entries=2, timer=clock)

    def test_hit_returns_stored_payload(self, cache):
        result = make_result()
        cache.put("fp1", result)

        assert cache.get("fp1") == result
        stats = cache.stats()
        assert stats.hits == 1
        assert stats.misses == 0

    def test_miss_is_counted(self, cache):
        assert cache.get("unknown") is None
        assert cache.stats().misses == 1

    def test_entry_expires_with_ttl(self, cache, clock):
        """An entry is served until its TTL runs out and gone after it."""
        cache.put("fp1", make_result())

        clock.advance(59)
        assert cache.get("fp1") is not None

        clock.advance(1)
        assert cache.get("fp1") is None
        assert len(cache) == 0
        assert cache.stats().evictions == 1

    def test_put_replaces_and_resets_expiry(self, cache, clock):
        cache.put("fp1", make_result(calories=100))
        clock.advance(50)
        cache.put("fp1", make_result(calories=200))
        clock.advance(50)

        cached = cache.get("fp1")
        assert cached is not None
        assert cached.calories == 200

    def test_evicts_least_recently_used(self, cache):
        """When full, the entry read least recently makes room."""
        cache.put("a", make_result("A"))
        cache.put("b", make_result("B"))
        cache.get("a")

        cache.put("c", make_result("C"))

        assert cache.inspect("b") is None
        assert cache.inspect("a") is not None
        assert cache.inspect("c") is not None
        assert cache.stats().evictions == 1

    def test_purge_expired(self, clock):
        cache = AnalysisCache(ttl_seconds=60, max_entries=10, timer=clock)
        cache.put("old", make_result())
        clock.advance(45)
        cache.put("new", make_result())
        clock.advance(30)

        assert cache.purge_expired() == 1
        assert cache.inspect("old") is None
        assert cache.inspect("new") is not None

    def test_inspect_does_not_count_hit(self, cache):
        cache.put("fp1", make_result())

        entry = cache.inspect("fp1")

        assert entry is not None
        assert entry.expires_at - entry.created_at == timedelta(seconds=60)
        assert cache.stats().hits == 0

    def test_evict_and_clear(self, cache):
        cache.put("a", make_result())
        cache.put("b", make_result())

        assert cache.evict("a") is True
        assert cache.evict("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_stats_hit_rate(self, cache):
        cache.put("a", make_result())
        cache.get("a")
        cache.get("missing")

        stats = cache.stats().as_dict()
        assert stats["hit_rate"] == 0.5
        assert stats["ttl_seconds"] == 60
        assert stats["max_entries"] == 2

    def test_payload_is_immutable(self, cache):
        """Cached results cannot be mutated by a reader."""
        cache.put("a", make_result())
        cached = cache.get("a")

        with pytest.raises(PydanticValidationError):
            cached.calories = 1

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            AnalysisCache(max_entries=0)

    def test_entry_remembers_its_source(self, cache):
        """Entries keep the provider call that produced them."""
        cache.put(
            "fp1",
            make_result(),
            provider_kind=ProviderKind.GEMINI,
            model_name="gemini-2.5-flash",
            config_version=4,
        )

        entry = cache.lookup("fp1")

        assert entry.provider_kind == ProviderKind.GEMINI
        assert entry.model_name == "gemini-2.5-flash"
        assert entry.config_version == 4
        assert cache.stats().hits == 1

    def test_purge_counts_as_eviction(self, cache, clock):
        cache.put("a", make_result())
        clock.advance(61)

        assert cache.purge_expired() == 1
        assert cache.stats().evictions == 1
        assert cache.purge_expired() == 0
