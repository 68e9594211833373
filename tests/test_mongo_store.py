"""
Tests for the MongoDB Vector Store

Runs the store against an in-process fake collection, so no MongoDB server
is needed. Covers batching, duplicate handling, transient-error retries and
async bulk writes.
"""

import asyncio
import copy
import threading

import pytest
from pymongo import errors

from vecdb.exceptions import BackendUnavailableError, DuplicateIdError, NotFoundError
from vecdb.vector_store.mongo_store import MongoVectorStore, is_transient_error
from vecdb.vector_store.schema import VectorRecord


class FakeResult:
    def __init__(self, deleted_count=0):
        self.deleted_count = deleted_count


class FakeCollection:
    """Minimal thread-safe stand-in for a pymongo collection."""

    def __init__(self):
        self.docs = {}
        self.lock = threading.Lock()
        self.calls = []
        self.failures = []

    def fail_next(self, *exceptions):
        """Queue exceptions raised by the next write calls."""
        self.failures.extend(exceptions)

    def _maybe_fail(self, name):
        self.calls.append(name)
        if self.failures:
            raise self.failures.pop(0)

    def _matches(self, doc, query):
        for key, condition in query.items():
            value = doc.get(key)
            if isinstance(condition, dict):
                if "$gt" in condition and not value > condition["$gt"]:
                    return False
                if "$in" in condition and value not in condition["$in"]:
                    return False
            elif value != condition:
                return False
        return True

    def create_index(self, *args, **kwargs):
        return "created_at_1"

    def insert_many(self, documents, ordered=True):
        with self.lock:
            self._maybe_fail("insert_many")
            self.calls.append(("insert_many_size", len(documents)))
            write_errors = []
            for position, doc in enumerate(documents):
                if doc["_id"] in self.docs:
                    write_errors.append({"index": position, "code": 11000, "errmsg": "duplicate key", "op": doc})
                else:
                    self.docs[doc["_id"]] = copy.deepcopy(doc)
            if write_errors:
                raise errors.BulkWriteError({"writeErrors": write_errors, "nInserted": len(documents) - len(write_errors)})

    def bulk_write(self, requests, ordered=True):
        with self.lock:
            self._maybe_fail("bulk_write")
            for request in requests:
                self.docs[request._filter["_id"]] = copy.deepcopy(request._doc)

    def replace_one(self, query, document, upsert=False):
        with self.lock:
            self._maybe_fail("replace_one")
            self.docs[query["_id"]] = copy.deepcopy(document)

    def find_one(self, query):
        with self.lock:
            self._maybe_fail("find_one")
            doc = self.docs.get(query["_id"])
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, query=None, sort=None, limit=0):
        with self.lock:
            self._maybe_fail("find")
            matched = [copy.deepcopy(d) for d in self.docs.values() if self._matches(d, query or {})]
        if sort:
            matched.sort(key=lambda d: d["_id"])
        return matched[:limit] if limit else matched

    def count_documents(self, query, limit=0):
        with self.lock:
            return sum(1 for d in self.docs.values() if self._matches(d, query))

    def delete_one(self, query):
        with self.lock:
            self._maybe_fail("delete_one")
            return FakeResult(1 if self.docs.pop(query["_id"], None) is not None else 0)

    def delete_many(self, query):
        with self.lock:
            count = len(self.docs)
            self.docs.clear()
            return FakeResult(count)


def make_record(record_id, **metadata):
    return VectorRecord(id=record_id, vector=[0.1, 0.2, 0.3], metadata=metadata)


class TestTransientErrorClassification:
    """Test which driver errors are retried."""

    def test_transient_errors(self):
        assert is_transient_error(errors.AutoReconnect("primary stepped down"))
        assert is_transient_error(errors.NetworkTimeout("timed out"))
        assert is_transient_error(errors.OperationFailure("too many requests", code=16500))
        assert is_transient_error(errors.ExecutionTimeout("slow", code=50))

    def test_permanent_errors(self):
        assert not is_transient_error(errors.OperationFailure("bad value", code=2))
        assert not is_transient_error(errors.DuplicateKeyError("dup", code=11000))
        assert not is_transient_error(ValueError("nope"))


class TestMongoVectorStore:
    """Test the MongoDB backend over a fake collection."""

    def setup_method(self):
        self.collection = FakeCollection()
        self.metadata_collection = FakeCollection()
        self.sleeps = []
        self.store = MongoVectorStore(
            3,
            collection=self.collection,
            metadata_collection=self.metadata_collection,
            max_batch_size=3,
            max_retries=4,
            retry_base_delay=0.01,
            retry_max_delay=0.05,
            max_concurrency=2,
            sleep=self.sleeps.append,
        )

    def teardown_method(self):
        self.store.close()

    def test_document_shape(self):
        self.store.put(make_record("a", section="skills"))
        doc = self.collection.docs["a"]
        assert doc["_id"] == "a"
        assert doc["id"] == "a"
        assert doc["metadata"] == {"section": "skills"}
        assert len(doc["vector"]) == 3

    def test_put_get_delete(self):
        self.store.put(make_record("a", section="skills"))
        assert self.store.get("a").metadata == {"section": "skills"}
        assert "a" in self.store
        assert self.store.delete("a") is True
        assert self.store.delete("a") is False
        with pytest.raises(NotFoundError):
            self.store.get("a")

    def test_batches_are_chunked(self):
        self.store.put_many([make_record(f"r{i:02d}") for i in range(10)])
        sizes = sorted(call[1] for call in self.collection.calls
                       if isinstance(call, tuple) and call[0] == "insert_many_size")
        assert sizes == [1, 3, 3, 3]
        assert self.store.count() == 10

    def test_duplicate_ids_are_reported(self):
        self.store.put(make_record("r1"))
        with pytest.raises(DuplicateIdError) as exc_info:
            self.store.put_many([make_record("r0"), make_record("r1"), make_record("r2")])
        assert exc_info.value.details["ids"] == ["r1"]
        # unordered insert still writes the non-colliding documents
        assert set(self.collection.docs) == {"r0", "r1", "r2"}

    def test_overwrite_uses_upserts(self):
        self.store.put(make_record("a", version=1))
        self.store.put_many([make_record("a", version=2), make_record("b")], overwrite=True)
        assert self.store.get("a").metadata["version"] == 2
        assert "bulk_write" in self.collection.calls

    def test_transient_failure_is_retried(self):
        self.collection.fail_next(errors.AutoReconnect("blip"), errors.OperationFailure("throttled", code=16500))
        self.store.put(make_record("a"))
        assert self.store.get("a").id == "a"
        assert len(self.sleeps) == 2
        assert self.store.retries == 2
        assert all(0 < delay <= 0.05 for delay in self.sleeps)

    def test_retry_after_partial_landing_is_idempotent(self):
        original = self.collection.insert_many

        def insert_then_drop_connection(documents, ordered=True):
            original(documents, ordered=ordered)
            self.collection.insert_many = original
            raise errors.AutoReconnect("connection reset after write")

        self.collection.insert_many = insert_then_drop_connection
        self.store.put_many([make_record("a"), make_record("b")])
        assert set(self.collection.docs) == {"a", "b"}

    def test_retries_exhausted(self):
        self.collection.fail_next(*[errors.AutoReconnect("down")] * 10)
        with pytest.raises(BackendUnavailableError) as exc_info:
            self.store.put(make_record("a"))
        assert exc_info.value.retryable
        assert len(self.sleeps) == 3

    def test_permanent_failure_is_not_retried(self):
        self.collection.fail_next(errors.OperationFailure("bad value", code=2))
        with pytest.raises(errors.OperationFailure):
            self.store.put(make_record("a"))
        assert self.sleeps == []

    def test_scan_pages_in_id_order(self):
        self.store.put_many([make_record(f"r{i}", even=(i % 2 == 0)) for i in range(7)])
        assert [r.id for r in self.store.scan(page_size=2)] == [f"r{i}" for i in range(7)]
        assert [r.id for r in self.store.scan({"even": True})] == ["r0", "r2", "r4", "r6"]

    def test_get_many(self):
        self.store.put_many([make_record(f"r{i}") for i in range(4)])
        assert set(self.store.get_many(["r1", "r3", "zz"])) == {"r1", "r3"}

    def test_index_metadata(self):
        self.store.put_index_metadata("config", {"dimensions": 3})
        assert self.store.get_index_metadata("config") == {"dimensions": 3}
        assert self.store.get_index_metadata("quantizer") is None

    def test_put_many_async(self):
        records = [make_record(f"r{i:02d}") for i in range(8)]
        asyncio.run(self.store.put_many_async(records))
        assert self.store.count() == 8

    def test_put_many_async_duplicates(self):
        self.store.put(make_record("r03"))
        with pytest.raises(DuplicateIdError):
            asyncio.run(self.store.put_many_async([make_record(f"r{i:02d}") for i in range(6)]))

    def test_clear_and_health(self):
        self.store.put_many([make_record(f"r{i}") for i in range(3)])
        self.store.clear()
        assert self.store.count() == 0
        assert self.store.health_check()["status"] == "healthy"
