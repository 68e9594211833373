"""
Tests for Vector Store Components

Tests the in-memory, file and hybrid backends against the shared store
contract, plus record schema, metadata filters and snapshots.
"""

import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest

from vecdb.config import VectorDBConfig
from vecdb.exceptions import (DimensionMismatchError, DuplicateIdError, InvalidSearchOptionsError,
                              NotFoundError, SnapshotFormatError)
from vecdb.similarity.quantizer import ScalarQuantizer
from vecdb.vector_store.factory import create_vector_store
from vecdb.vector_store.file_store import FileVectorStore
from vecdb.vector_store.filters import compile_filter, matches_filter
from vecdb.vector_store.hybrid_store import HybridVectorStore
from vecdb.vector_store.memory_store import MemoryVectorStore
from vecdb.vector_store.schema import SearchOptions, VectorRecord
from vecdb.vector_store.snapshot import SnapshotHeader, iter_snapshot, read_snapshot_header, write_snapshot


def make_record(record_id, values=None, **metadata):
    return VectorRecord(id=record_id, vector=values if values is not None else [0.1, 0.2, 0.3, 0.4],
                        metadata=metadata)


class TestVectorRecord:
    """Test record schema functionality."""

    def test_record_creation(self):
        record = make_record("rec_1", section="skills")
        assert record.vector.dtype == np.float32
        assert record.dimensions == 4
        assert record.metadata == {"section": "skills"}
        assert record.created_at is not None
        assert record.updated_at == record.created_at

    def test_record_round_trip(self):
        record = make_record("rec_2", tags=["a", "b"], importance=0.7)
        restored = VectorRecord.from_dict(record.to_dict())
        assert restored == record
        assert restored.created_at == record.created_at

    def test_record_requires_vector_or_codes(self):
        with pytest.raises(ValueError):
            VectorRecord(id="rec_3", vector=None)

    def test_record_rejects_empty_id(self):
        with pytest.raises(ValueError):
            VectorRecord(id="", vector=[1.0])


class TestSearchOptions:
    """Test search option validation."""

    def test_defaults(self):
        options = SearchOptions().validate()
        assert options.top_k == 10
        assert options.use_cache
        assert options.include_metadata

    def test_camel_case_aliases(self):
        options = SearchOptions.from_mapping({"topK": 3, "useCache": False, "includeMetadata": False})
        assert options.top_k == 3
        assert not options.use_cache
        assert not options.include_metadata

    def test_unknown_option(self):
        with pytest.raises(InvalidSearchOptionsError):
            SearchOptions.from_mapping({"limit": 3})

    @pytest.mark.parametrize("values", [
        {"top_k": 0},
        {"top_k": -1},
        {"top_k": 5, "ef": 4},
        {"ef": 0},
        {"threshold": "high"},
        {"algorithm": "hamming"},
        {"filters": ["not", "a", "dict"]},
    ])
    def test_invalid_options(self, values):
        with pytest.raises(InvalidSearchOptionsError):
            SearchOptions(**values).validate()


class TestMetadataFilters:
    """Test Mongo-style metadata filters."""

    def setup_method(self):
        self.metadata = {
            "section": "experience",
            "importance": 0.8,
            "tags": ["python", "search"],
            "profile": {"country": "DE"},
            "summary": "Built a Vector Search engine",
        }

    def test_equality_and_array_contains(self):
        assert matches_filter(self.metadata, {"section": "experience"})
        assert matches_filter(self.metadata, {"tags": "python"})
        assert not matches_filter(self.metadata, {"tags": "java"})

    def test_comparison_operators(self):
        assert matches_filter(self.metadata, {"importance": {"$gte": 0.5, "$lt": 0.9}})
        assert not matches_filter(self.metadata, {"importance": {"$gt": 0.8}})
        assert not matches_filter(self.metadata, {"missing": {"$gt": 0}})

    def test_membership_and_existence(self):
        assert matches_filter(self.metadata, {"section": {"$in": ["skills", "experience"]}})
        assert matches_filter(self.metadata, {"section": {"$nin": ["skills"]}})
        assert matches_filter(self.metadata, {"missing": {"$exists": False}})
        assert not matches_filter(self.metadata, {"section": {"$exists": False}})
        assert matches_filter(self.metadata, {"summary": {"$contains": "vector search"}})

    def test_logical_operators(self):
        assert matches_filter(self.metadata, {"$or": [{"section": "skills"}, {"importance": {"$gte": 0.5}}]})
        assert not matches_filter(self.metadata, {"$and": [{"section": "experience"}, {"tags": "java"}]})
        assert matches_filter(self.metadata, {"$not": {"section": "skills"}})
        assert matches_filter(self.metadata, {"importance": {"$not": {"$lt": 0.5}}})

    def test_dotted_paths(self):
        assert matches_filter(self.metadata, {"profile.country": "DE"})
        assert not matches_filter(self.metadata, {"profile.country": {"$in": ["FR"]}})

    def test_unknown_operator(self):
        with pytest.raises(InvalidSearchOptionsError):
            matches_filter(self.metadata, {"importance": {"$near": 1}})

    def test_compile_filter(self):
        assert compile_filter(None) is None
        assert compile_filter({}) is None
        predicate = compile_filter({"section": "experience"})
        assert predicate(self.metadata)
        custom = compile_filter(lambda m: m.get("importance", 0) > 0.5)
        assert custom(self.metadata)

    @pytest.mark.parametrize("filters", [
        {"importance": {"$bogus": 1}},
        {"importance": {"$not": {"$near": 1}}},
        {"$nor": [{"section": "skills"}]},
        {"$or": {"section": "skills"}},
        {"$and": [{"section": "experience"}, {"tags": {"$regex": "py"}}]},
        {"$not": [{"section": "skills"}]},
        {"section": {"$in": "experience"}},
    ])
    def test_compile_rejects_malformed_filters(self, filters):
        with pytest.raises(InvalidSearchOptionsError):
            compile_filter(filters)
        with pytest.raises(InvalidSearchOptionsError):
            SearchOptions(filters=filters).validate()

    def test_compile_accepts_nested_filters(self):
        predicate = compile_filter({
            "$or": [{"section": {"$in": ["skills", "experience"]}}, {"pinned": True}],
            "importance": {"$not": {"$lt": 0.5}},
            "profile": {"country": "DE"},
        })
        assert predicate(self.metadata)


class StoreContractTests:
    """Contract shared by every store backend."""

    def create_store(self):
        raise NotImplementedError

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.store = self.create_store()

    def teardown_method(self):
        self.store.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_put_and_get(self):
        record = make_record("a", section="skills")
        self.store.put(record)
        loaded = self.store.get("a")
        assert loaded == record
        assert np.allclose(loaded.vector, record.vector)

    def test_duplicate_on_create_path(self):
        self.store.put(make_record("a"))
        with pytest.raises(DuplicateIdError):
            self.store.put(make_record("a"))

    def test_overwrite_on_update_path(self):
        self.store.put(make_record("a", version=1))
        self.store.put(make_record("a", [1.0, 1.0, 1.0, 1.0], version=2), overwrite=True)
        loaded = self.store.get("a")
        assert loaded.metadata["version"] == 2
        assert np.allclose(loaded.vector, [1.0, 1.0, 1.0, 1.0])
        assert self.store.count() == 1

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            self.store.put(make_record("a", [1.0, 2.0, 3.0]))
        assert self.store.count() == 0

    def test_get_missing(self):
        with pytest.raises(NotFoundError):
            self.store.get("missing")

    def test_delete_is_idempotent(self):
        self.store.put(make_record("a"))
        assert self.store.delete("a") is True
        assert self.store.delete("a") is False
        assert self.store.delete("never-existed") is False
        assert "a" not in self.store

    def test_put_many_and_get_many(self):
        self.store.put_many([make_record(f"r{i}", index=i) for i in range(5)])
        found = self.store.get_many(["r1", "r3", "missing"])
        assert set(found) == {"r1", "r3"}
        assert found["r3"].metadata["index"] == 3

    def test_scan_is_restartable_and_filtered(self):
        self.store.put_many([make_record(f"r{i}", even=(i % 2 == 0)) for i in range(6)])
        assert sorted(r.id for r in self.store.scan()) == [f"r{i}" for i in range(6)]
        assert sorted(r.id for r in self.store.scan()) == [f"r{i}" for i in range(6)]
        assert sorted(r.id for r in self.store.scan({"even": True})) == ["r0", "r2", "r4"]
        assert sorted(r.id for r in self.store.scan(lambda r: r.id == "r5")) == ["r5"]

    def test_index_metadata(self):
        assert self.store.get_index_metadata("config") is None
        self.store.put_index_metadata("config", {"dimensions": 4, "metric": "cosine"})
        assert self.store.get_index_metadata("config") == {"dimensions": 4, "metric": "cosine"}

    def test_clear(self):
        self.store.put_many([make_record(f"r{i}") for i in range(3)])
        self.store.clear()
        assert self.store.count() == 0
        assert list(self.store.scan()) == []

    def test_health_check(self):
        assert self.store.health_check()["status"] == "healthy"


class TestMemoryVectorStore(StoreContractTests):
    """Test the in-memory backend."""

    def create_store(self):
        return MemoryVectorStore(4)

    def test_returned_records_are_copies(self):
        self.store.put(make_record("a", section="skills"))
        loaded = self.store.get("a")
        loaded.metadata["section"] = "changed"
        loaded.vector[0] = 99.0
        assert self.store.get("a").metadata["section"] == "skills"
        assert self.store.get("a").vector[0] != 99.0

    def test_capacity_evicts_least_recently_used(self):
        store = MemoryVectorStore(4, capacity=2)
        store.put(make_record("a"))
        store.put(make_record("b"))
        store.touch("a")
        store.put(make_record("c"))
        assert "a" in store
        assert "b" not in store
        assert store.evictions == 1


class TestFileVectorStore(StoreContractTests):
    """Test the append-log file backend."""

    def create_store(self):
        return FileVectorStore(4, path=Path(self.temp_dir) / "vectors.log", compaction_threshold=None)

    def reopen(self):
        self.store.close()
        self.store = self.create_store()

    def test_persistence_across_reopen(self):
        self.store.put_many([make_record(f"r{i}", index=i) for i in range(3)])
        self.store.put(make_record("r1", [1.0, 0.0, 0.0, 0.0], index=10), overwrite=True)
        self.store.delete("r2")
        self.store.put_index_metadata("config", {"dimensions": 4})
        self.reopen()

        assert sorted(r.id for r in self.store.scan()) == ["r0", "r1"]
        assert self.store.get("r1").metadata["index"] == 10
        assert self.store.get_index_metadata("config") == {"dimensions": 4}

    def test_compaction_drops_dead_entries(self):
        self.store.put_many([make_record(f"r{i}") for i in range(4)])
        self.store.put(make_record("r0", section="new"), overwrite=True)
        self.store.delete("r1")
        assert self.store.dead_entries == 3
        size_before = self.store.path.stat().st_size

        result = self.store.compact()

        assert result["records"] == 3
        assert result["dropped_entries"] == 3
        assert self.store.dead_entries == 0
        assert self.store.path.stat().st_size < size_before
        assert self.store.get("r0").metadata["section"] == "new"
        self.reopen()
        assert sorted(r.id for r in self.store.scan()) == ["r0", "r2", "r3"]

    def test_automatic_compaction(self):
        store = FileVectorStore(4, path=Path(self.temp_dir) / "auto.log",
                                compaction_threshold=0.5, min_compaction_entries=4)
        store.put_many([make_record(f"r{i}") for i in range(3)])
        store.delete("r0")
        store.delete("r1")
        assert store.compactions >= 1
        assert [r.id for r in store.scan()] == ["r2"]
        store.close()

    def test_torn_trailing_entry_is_dropped(self):
        self.store.put_many([make_record("r0"), make_record("r1")])
        self.store.close()
        with open(self.store.path, "ab") as f:
            f.write(b'{"op":"put","record":{"id":"r2"')
        self.store = self.create_store()

        assert sorted(r.id for r in self.store.scan()) == ["r0", "r1"]
        self.store.put(make_record("r3"))
        self.reopen()
        assert sorted(r.id for r in self.store.scan()) == ["r0", "r1", "r3"]

    def test_scan_survives_compaction(self):
        self.store.put_many([make_record(f"r{i}") for i in range(4)])
        self.store.delete("r3")
        scan = self.store.scan()
        first = next(scan)
        self.store.compact()
        rest = [r.id for r in scan]
        assert sorted([first.id] + rest) == ["r0", "r1", "r2"]


class TestHybridVectorStore(StoreContractTests):
    """Test the memory cache layer over a file store."""

    def create_store(self):
        durable = FileVectorStore(4, path=Path(self.temp_dir) / "vectors.log", compaction_threshold=None)
        return HybridVectorStore(durable, cache_capacity=2)

    def test_write_through(self):
        self.store.put(make_record("a"))
        assert self.store.durable.contains("a")
        assert self.store.cache.contains("a")

    def test_lazy_population_on_read_miss(self):
        self.store.durable.put(make_record("b", section="cold"))
        assert not self.store.cache.contains("b")

        assert self.store.get("b").metadata["section"] == "cold"
        assert self.store.cache.contains("b")
        assert self.store.cache_misses == 1

        self.store.get("b")
        assert self.store.cache_hits == 1

    def test_capacity_bounds_cache_not_store(self):
        self.store.put_many([make_record(f"r{i}") for i in range(4)])
        assert self.store.cache.count() == 2
        assert self.store.count() == 4
        assert self.store.get("r0").id == "r0"

    def test_delete_removes_from_both(self):
        self.store.put(make_record("a"))
        self.store.delete("a")
        assert not self.store.cache.contains("a")
        assert not self.store.durable.contains("a")


class TestStoreFactory:
    """Test backend selection."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_memory_backend(self):
        store = create_vector_store(VectorDBConfig(dimensions=4))
        assert isinstance(store, MemoryVectorStore)

    def test_hybrid_file_backend(self):
        config = VectorDBConfig(dimensions=4, backend="file", hybrid=True,
                                file_path=str(Path(self.temp_dir) / "v.log"))
        store = create_vector_store(config)
        assert isinstance(store, HybridVectorStore)
        assert isinstance(store.durable, FileVectorStore)
        store.close()


class TestSnapshotFormat:
    """Test the portable snapshot file format."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "snapshot.bin"

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_write_and_read(self):
        quantizer = ScalarQuantizer(4)
        records = [
            make_record("plain", [0.5, -1.0, 2.0, 0.0], section="skills", tags=["x"]),
            VectorRecord(id="codes-only", vector=None, quantized=quantizer.quantize([1.0, 2.0, 3.0, 4.0]),
                         metadata={"n": 1}),
        ]
        header = SnapshotHeader(dimensions=4, metric="cosine", quantization=True,
                                quantizer=quantizer.to_dict())

        assert write_snapshot(self.path, header, iter(records)) == 2

        loaded_header = read_snapshot_header(self.path)
        assert loaded_header.record_count == 2
        assert loaded_header.dimensions == 4
        assert loaded_header.quantization is True
        assert loaded_header.quantizer == quantizer.to_dict()

        loaded = list(iter_snapshot(self.path))
        assert loaded[0] == records[0]
        assert loaded[0].created_at == records[0].created_at
        assert loaded[1].vector is None
        assert loaded[1].quantized == records[1].quantized

    def test_bad_magic(self):
        self.path.write_bytes(b"NOTASNAP" + b"\x00" * 32)
        with pytest.raises(SnapshotFormatError):
            read_snapshot_header(self.path)

    def test_truncated_file(self):
        header = SnapshotHeader(dimensions=4, metric="euclidean", quantization=False)
        write_snapshot(self.path, header, [make_record(f"r{i}") for i in range(3)])
        data = self.path.read_bytes()
        self.path.write_bytes(data[:-10])
        with pytest.raises(SnapshotFormatError):
            list(iter_snapshot(self.path))
