"""Unit tests for the history record store."""

import json
import re

import pytest

from stylestudio.core.errors import QuotaExceeded, StorageUnavailable, ValidationError
from stylestudio.core.history_store import (
    HISTORY_KEY,
    MAX_HISTORY_ITEMS,
    HistoryStore,
    generate_history_id,
)
from stylestudio.core.models import GenerationResult, HistoryRecord
from stylestudio.core.storage import MemoryStorage


class TestAppend:
    """Tests for HistoryStore.append."""

    def test_append_and_load(self, history_store, make_history_record):
        """Test that an appended record loads back equal to the original."""
        raw = make_history_record()
        stored = history_store.append(raw)

        loaded = history_store.load_all()
        assert loaded == [stored]
        assert loaded[0].model_dump(by_alias=True) == raw

    def test_append_accepts_model(self, history_store, history_record):
        """Test that a HistoryRecord instance can be appended directly."""
        history_store.append(history_record)
        assert history_store.load_all() == [history_record]

    def test_records_sorted_newest_first(self, history_store, make_history_record):
        """Test that records come back in descending timestamp order."""
        for timestamp in (3000, 1000, 2000):
            history_store.append(make_history_record(timestamp))

        assert [r.timestamp for r in history_store.load_all()] == [3000, 2000, 1000]

    def test_cap_keeps_newest(self, history_store, make_history_record):
        """Test that 101 appends keep 100 records and drop the oldest."""
        for timestamp in range(1, MAX_HISTORY_ITEMS + 2):
            history_store.append(make_history_record(timestamp))

        loaded = history_store.load_all()
        assert len(loaded) == MAX_HISTORY_ITEMS
        assert min(r.timestamp for r in loaded) == 2
        assert all(r.timestamp != 1 for r in loaded)

    def test_cap_drops_smallest_timestamp_regardless_of_order(self, make_history_record):
        """Test that eviction uses timestamps, not insertion order."""
        store = HistoryStore(MemoryStorage(), max_items=3)
        for timestamp in (50, 10, 40, 30):
            store.append(make_history_record(timestamp))

        assert [r.timestamp for r in store.load_all()] == [50, 40, 30]

    def test_new_record_leads_among_equal_timestamps(self, history_store, make_history_record):
        """Test that a new record sorts ahead of an existing one with the same timestamp."""
        history_store.append(make_history_record(1000, id="history_old"))
        history_store.append(make_history_record(1000, id="history_new"))

        assert [r.id for r in history_store.load_all()] == ["history_new", "history_old"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"prompt": ""},
            {"template": None},
            {"timestamp": 0},
            {"timestamp": -5},
            {"timestamp": "1700000000000"},
            {"timestamp": True},
            {"generatedImageUrl": 42},
        ],
    )
    def test_invalid_record_raises(self, history_store, make_history_record, overrides):
        """Test that malformed records raise ValidationError and are not stored."""
        with pytest.raises(ValidationError) as excinfo:
            history_store.append(make_history_record(**overrides))

        assert excinfo.value.reasons
        assert history_store.load_all() == []

    def test_missing_field_raises(self, history_store, make_history_record):
        """Test that a record without a required field is rejected."""
        raw = make_history_record()
        del raw["originalImageUrl"]
        with pytest.raises(ValidationError, match="originalImageUrl"):
            history_store.append(raw)

    def test_append_unavailable_raises(self, unavailable_storage, make_history_record):
        """Test that appending to unavailable storage raises StorageUnavailable."""
        store = HistoryStore(unavailable_storage)
        with pytest.raises(StorageUnavailable):
            store.append(make_history_record())

    def test_quota_exceeded_then_retry_after_remove(self, make_history_record):
        """Test that removing records frees room for a retried append."""
        raw = make_history_record(1)
        record_size = len(json.dumps([raw], ensure_ascii=False, separators=(",", ":")).encode())
        store = HistoryStore(MemoryStorage(quota_bytes=len(HISTORY_KEY) + record_size * 3 // 2))

        store.append(make_history_record(1, id="history_a"))
        with pytest.raises(QuotaExceeded):
            store.append(make_history_record(2, id="history_b"))

        store.remove("history_a")
        store.append(make_history_record(2, id="history_b"))
        assert [r.id for r in store.load_all()] == ["history_b"]


class TestLoadAll:
    """Tests for HistoryStore.load_all degradation."""

    def test_empty_store(self, history_store):
        """Test that a fresh store loads as empty."""
        assert history_store.load_all() == []

    def test_invalid_entries_filtered(self, memory_storage, make_history_record):
        """Test that one malformed entry is dropped and the valid one kept."""
        broken = make_history_record(2)
        del broken["prompt"]
        memory_storage.set(HISTORY_KEY, json.dumps([make_history_record(1), broken]))

        loaded = HistoryStore(memory_storage).load_all()
        assert len(loaded) == 1
        assert loaded[0].timestamp == 1

    def test_resorts_unsorted_blob(self, memory_storage, make_history_record):
        """Test that stored order is not trusted."""
        entries = [make_history_record(t) for t in (1, 3, 2)]
        memory_storage.set(HISTORY_KEY, json.dumps(entries))

        assert [r.timestamp for r in HistoryStore(memory_storage).load_all()] == [3, 2, 1]

    @pytest.mark.parametrize("blob", ["{not json", '{"id": "x"}', "42", "null"])
    def test_corrupt_blob_loads_empty(self, memory_storage, blob):
        """Test that corrupt or non-list payloads load as empty."""
        memory_storage.set(HISTORY_KEY, blob)
        assert HistoryStore(memory_storage).load_all() == []

    def test_unavailable_storage_loads_empty(self, unavailable_storage):
        """Test that unreadable storage loads as empty rather than raising."""
        assert HistoryStore(unavailable_storage).load_all() == []

    def test_deeply_nested_blob_loads_empty(self, memory_storage):
        """Test that JSON nested past the recursion limit degrades to empty."""
        memory_storage.set(HISTORY_KEY, "[" * 100_000 + "]" * 100_000)
        store = HistoryStore(memory_storage)

        assert store.load_all() == []
        assert store.stats().count == 0


class TestRemoveAndClear:
    """Tests for HistoryStore.remove and HistoryStore.clear."""

    def test_remove_existing(self, history_store, make_history_record):
        """Test that remove drops exactly one record."""
        history_store.append(make_history_record(1, id="history_a"))
        history_store.append(make_history_record(2, id="history_b"))

        assert history_store.remove("history_a") is True
        assert [r.id for r in history_store.load_all()] == ["history_b"]

    def test_remove_absent_is_noop(self, history_store, make_history_record):
        """Test that removing an unknown id changes nothing."""
        history_store.append(make_history_record())
        before = history_store.storage.get(HISTORY_KEY)

        assert history_store.remove("history_unknown") is False
        assert history_store.storage.get(HISTORY_KEY) == before

    def test_clear_deletes_key(self, history_store, make_history_record):
        """Test that clear removes the stored blob entirely."""
        history_store.append(make_history_record())
        history_store.clear()

        assert history_store.storage.get(HISTORY_KEY) is None
        assert history_store.load_all() == []

    def test_remove_and_clear_unavailable_raise(self, unavailable_storage):
        """Test that writes to unavailable storage raise."""
        store = HistoryStore(unavailable_storage)
        with pytest.raises(StorageUnavailable):
            store.remove("history_a")
        with pytest.raises(StorageUnavailable):
            store.clear()


class TestStatsAndLookup:
    """Tests for stats, get and record_generation."""

    def test_stats_counts_bytes(self, history_store, make_history_record):
        """Test that stats reports the record count and UTF-8 blob size."""
        history_store.append(make_history_record(1))
        history_store.append(make_history_record(2))

        stats = history_store.stats()
        assert stats.count == 2
        assert stats.storage_size_bytes == len(history_store.storage.get(HISTORY_KEY).encode())

    def test_stats_empty_and_unavailable(self, history_store, unavailable_storage):
        """Test that empty or unavailable storage reports zeros."""
        assert history_store.stats().model_dump() == {"count": 0, "storage_size_bytes": 0}
        assert HistoryStore(unavailable_storage).stats().storage_size_bytes == 0

    def test_get_by_id(self, history_store, make_history_record):
        """Test that get returns the matching record or None."""
        history_store.append(make_history_record(1, id="history_a"))
        assert history_store.get("history_a").timestamp == 1
        assert history_store.get("history_missing") is None

    def test_record_generation(self, history_store):
        """Test that a generation result becomes a stored record with a new id."""
        result = GenerationResult(
            image_url="https://cdn.example.com/out.png",
            timestamp=1_700_000_000_123,
            template="征服高山",
            prompt="站在山峰之巅",
            generation_id="gen-1",
        )
        record = history_store.record_generation(result, original_image_url="blob:upload")

        assert isinstance(record, HistoryRecord)
        assert record.generated_image_url == result.image_url
        assert record.original_image_url == "blob:upload"
        assert history_store.load_all() == [record]

    def test_generated_ids_are_unique(self):
        """Test the history id format and uniqueness."""
        ids = {generate_history_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(re.fullmatch(r"history_\d+_[0-9a-z]{9}", i) for i in ids)
