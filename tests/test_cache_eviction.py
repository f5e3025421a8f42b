"""Tests for LRU eviction under size and count budgets."""
from __future__ import annotations

from koko_tts.core.config import CacheConfig
from koko_tts.tts import storage
from koko_tts.tts.cache import CacheStore


class TickingClock:
    """Advances one second per call so every operation gets a distinct time."""

    def __init__(self):
        self.now = 1_000.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


def _store(tmp_path, **limits) -> CacheStore:
    config = CacheConfig(directory=str(tmp_path / "cache"), **limits)
    return CacheStore(config, clock=TickingClock())


class TestSizeBudget:
    def test_least_recently_used_evicted_first(self, tmp_path, payload_file):
        size = payload_file.stat().st_size
        store = _store(tmp_path, max_size_bytes=2 * size + size // 2)

        key_a = store.set("a", "v", payload_file)
        key_b = store.set("b", "v", payload_file)
        store.get("a", "v")
        key_c = store.set("c", "v", payload_file)

        assert key_a in store
        assert key_b not in store
        assert key_c in store
        assert not storage.entry_dir(store.directory, key_b).exists()

    def test_total_size_stays_within_budget(self, tmp_path, payload_file):
        size = payload_file.stat().st_size
        budget = 3 * size
        store = _store(tmp_path, max_size_bytes=budget)

        for i in range(10):
            store.set(f"text {i}", "v", payload_file)
            stats = store.get_stats()
            assert stats.total_size_bytes <= budget
            assert stats.total_size_bytes == sum(e.size_bytes for e in store.entries())

        assert len(store) == 3
        assert [e.text for e in store.entries()] == ["text 9", "text 8", "text 7"]

    def test_most_recent_entry_is_never_evicted_while_others_remain(self, tmp_path, payload_file):
        size = payload_file.stat().st_size
        store = _store(tmp_path, max_size_bytes=size)

        store.set("a", "v", payload_file)
        key_b = store.set("b", "v", payload_file)

        assert key_b is not None
        assert [e.text for e in store.entries()] == ["b"]

    def test_entry_larger_than_budget_is_not_kept(self, tmp_path, payload_file):
        store = _store(tmp_path, max_size_bytes=payload_file.stat().st_size - 1)
        assert store.set("huge", "v", payload_file) is None
        assert len(store) == 0
        assert store.get_stats().total_size_bytes == 0


class TestCountBudget:
    def test_oldest_access_evicted(self, tmp_path, payload_file):
        store = _store(tmp_path, max_entries=2)

        key_a = store.set("a", "v", payload_file)
        key_b = store.set("b", "v", payload_file)
        store.get("a", "v")
        key_c = store.set("c", "v", payload_file)

        assert len(store) == 2
        assert key_a in store
        assert key_b not in store
        assert key_c in store

    def test_index_snapshot_matches_after_eviction(self, tmp_path, payload_file):
        store = _store(tmp_path, max_entries=1)
        store.set("a", "v", payload_file)
        key_b = store.set("b", "v", payload_file)

        snapshot = storage.load_json(storage.index_path(store.directory))
        assert list(snapshot["entries"]) == [key_b]
        assert snapshot["total_size"] == payload_file.stat().st_size
