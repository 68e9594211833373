"""
Vector Database

Public entry point of the engine. Composes a vector store, an HNSW graph
index, an optional scalar quantizer and a query cache:

- writes: validate -> store (durable) -> index (structural) -> cache invalidation
- reads:  cache -> index candidates -> exact re-score -> metadata filter -> threshold

Writes are serialized by one mutex. Searches run concurrently with each other
and with store reads; graph mutation is exclusive to the index's own lock.
"""

import dataclasses
import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from ..config import VectorDBConfig
from ..exceptions import (ConfigurationError, DimensionMismatchError, DuplicateIdError,
                          InvalidSearchOptionsError, PartialWriteError)
from ..index.hnsw import HNSWIndex
from ..index.locks import RWLock
from ..similarity.distance import Metric, VectorLike, as_vector, batch_scores, passes_threshold, ranking_key
from ..similarity.exact_search import FlatSearcher
from ..similarity.quantizer import ScalarQuantizer
from ..similarity.query_cache import QueryCache
from ..vector_store.base import VectorStore
from ..vector_store.factory import create_vector_store
from ..vector_store.filters import compile_filter
from ..vector_store.schema import (SearchHit, SearchOptions, SearchQuery, SearchResult, VectorRecord,
                                   new_record_id)
from ..vector_store.snapshot import SnapshotHeader, iter_snapshot, read_snapshot_header, write_snapshot

logger = logging.getLogger(__name__)

CONFIG_DOCUMENT = "config"
QUANTIZER_DOCUMENT = "quantizer"


class VectorDatabase:
    """
    Vector similarity search over one store and one graph index.

    The store is the source of truth; the index is rebuilt from it on open,
    on demand and when tombstones pile up.
    """

    def __init__(self, config: VectorDBConfig, store: Optional[VectorStore] = None):
        """
        Initialize the database and rebuild the index from existing records.

        Args:
            config (VectorDBConfig): Database configuration
            store (Optional[VectorStore]): Pre-built store; built from config when omitted
        """
        self.config = config.validate()
        self.dimensions = config.dimensions
        self.metric: Metric = config.metric

        self.store = store if store is not None else create_vector_store(config)
        if self.store.dimensions != self.dimensions:
            raise ConfigurationError(
                f"Store dimensionality {self.store.dimensions} does not match configured {self.dimensions}")

        self.cache = QueryCache(max_entries=config.cache_size, enabled=config.cache_enabled)
        self.quantizer: Optional[ScalarQuantizer] = (
            ScalarQuantizer(self.dimensions) if config.quantization else None)

        self._write_lock = threading.RLock()
        self._index_lock = RWLock()
        self._index = self._new_index()
        self._generation = 0
        self._persisted_quantizer_version = -1

        self.stats = {
            "searches": 0,
            "cached_searches": 0,
            "exact_searches": 0,
            "inserted": 0,
            "updated": 0,
            "deleted": 0,
            "rebuilds": 0,
            "compactions": 0,
            "total_search_time": 0.0,
        }

        self._load_persisted_state()
        if self.store.count() > 0:
            self.rebuild_index()

        logger.info(f"VectorDatabase initialized: {self.dimensions} dimensions, metric={self.metric.value}, "
                    f"backend={self.store.backend_name}, quantization={config.quantization}")

    def _new_index(self) -> HNSWIndex:
        return HNSWIndex(
            dimensions=self.dimensions,
            metric=self.metric,
            m=self.config.m,
            ef_construction=self.config.ef_construction,
            ef_search=self.config.ef_search,
            level_multiplier=self.config.level_multiplier,
            seed=self.config.seed,
        )

    @property
    def index(self) -> HNSWIndex:
        with self._index_lock.read_lock():
            return self._index

    # Persisted index state

    def _load_persisted_state(self) -> None:
        expected = self.config.persisted_fields()
        stored = self.store.get_index_metadata(CONFIG_DOCUMENT)
        if stored is None:
            self.store.put_index_metadata(CONFIG_DOCUMENT, expected)
        else:
            for name in ("dimensions", "quantization"):
                if stored.get(name) != expected[name]:
                    logger.error(f"Store was created with {name}={stored.get(name)!r}, "
                                 f"configured {name}={expected[name]!r}")
                    raise ConfigurationError(
                        f"Configured {name} does not match the existing store; a full migration is required",
                        {"stored": stored, "configured": expected})
            if stored.get("metric") != expected["metric"]:
                logger.warning(f"Index metric changed from {stored.get('metric')} to {expected['metric']}; "
                               f"the graph will be rebuilt with the new metric")
                self.store.put_index_metadata(CONFIG_DOCUMENT, expected)

        if self.quantizer is not None:
            state = self.store.get_index_metadata(QUANTIZER_DOCUMENT)
            if state is not None:
                self.quantizer = ScalarQuantizer.from_dict(state)
                self._persisted_quantizer_version = self.quantizer.version

    def _persist_quantizer(self) -> None:
        """
        Write the quantizer ranges if they changed since the last successful write.

        Called before records carrying new codes reach the store, so every
        stored code refers to a range version that is persisted too.
        """
        if self.quantizer is None or self.quantizer.version == self._persisted_quantizer_version:
            return
        self.store.put_index_metadata(QUANTIZER_DOCUMENT, self.quantizer.to_dict())
        self._persisted_quantizer_version = self.quantizer.version

    # Record helpers

    def _validate_vector(self, vector: VectorLike, record_id: Optional[str] = None) -> np.ndarray:
        array = as_vector(vector)
        if array.shape[0] != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=array.shape[0], record_id=record_id)
        if not np.all(np.isfinite(array)):
            raise ValueError(f"Vector for {record_id or 'query'} contains NaN or infinite values")
        return array

    def _make_record(self, record_id: str, vector: np.ndarray, metadata: Optional[Dict[str, Any]],
                     created_at: Optional[datetime] = None) -> VectorRecord:
        quantized = self.quantizer.quantize(vector) if self.quantizer is not None else None
        keep_original = self.quantizer is None or self.config.retain_original_vectors
        now = datetime.now(timezone.utc)
        return VectorRecord(
            id=record_id,
            vector=vector if keep_original else None,
            metadata=metadata or {},
            quantized=quantized,
            created_at=created_at or now,
            updated_at=now,
        )

    def _original_vector(self, record: VectorRecord) -> np.ndarray:
        """Float vector for exact scoring; dequantized only when the original was dropped."""
        if record.vector is not None:
            return record.vector
        if self.quantizer is None:
            raise ConfigurationError(f"Record {record.id} has no float vector and quantization is disabled")
        return self.quantizer.dequantize(record.quantized)

    def _discard(self, record_ids: Iterable[str]) -> List[str]:
        """Best-effort store cleanup; returns ids that could not be removed."""
        failed = []
        for record_id in record_ids:
            try:
                self.store.delete(record_id)
            except Exception as e:
                logger.warning(f"Could not roll back store write for {record_id}: {e}")
                failed.append(record_id)
        return failed

    def _invalidate(self) -> None:
        self._generation += 1
        self.cache.invalidate()

    # Writes

    def add_vectors(self,
                    vectors: Sequence[VectorLike],
                    metadata: Optional[Sequence[Optional[Dict[str, Any]]]] = None,
                    ids: Optional[Sequence[str]] = None) -> List[str]:
        """
        Add a batch of vectors.

        The whole batch is validated (dimensionality, id uniqueness) before
        anything is written. Records are written to the store first and then
        inserted into the index; if either step fails the batch is rolled back.

        Args:
            vectors (Sequence[VectorLike]): Vectors to add
            metadata (Optional[Sequence[Optional[Dict[str, Any]]]]): Per-vector metadata
            ids (Optional[Sequence[str]]): Caller-assigned ids, generated when omitted

        Returns:
            List[str]: Ids of the added records, in input order

        Raises:
            DimensionMismatchError: A vector has the wrong length
            DuplicateIdError: An id exists already or repeats within the batch
            PartialWriteError: Rollback after a failure did not complete
        """
        vectors = list(vectors)
        if not vectors:
            return []
        if metadata is not None and len(metadata) != len(vectors):
            raise ValueError(f"Got {len(metadata)} metadata entries for {len(vectors)} vectors")
        if ids is not None and len(ids) != len(vectors):
            raise ValueError(f"Got {len(ids)} ids for {len(vectors)} vectors")

        start_time = time.time()
        ids = list(ids) if ids is not None else [new_record_id() for _ in vectors]
        metadata = list(metadata) if metadata is not None else [None] * len(vectors)

        with self._write_lock:
            arrays = [self._validate_vector(v, record_id=i) for v, i in zip(vectors, ids)]
            seen = set()
            for record_id in ids:
                if record_id in seen or self._index.contains(record_id):
                    raise DuplicateIdError(record_id)
                seen.add(record_id)

            records = [self._make_record(i, a, m) for i, a, m in zip(ids, arrays, metadata)]

            try:
                self._persist_quantizer()
                self.store.put_many(records)
            except DuplicateIdError as e:
                conflicting = set(e.details.get("ids", [e.record_id]))
                self._rollback_store([i for i in ids if i not in conflicting], e)
                raise
            except Exception as e:
                logger.error(f"Store write failed for batch of {len(records)}: {e}")
                self._rollback_store(ids, e)
                raise

            inserted: List[str] = []
            try:
                for record_id, array in zip(ids, arrays):
                    self._index.add(record_id, array)
                    inserted.append(record_id)
            except Exception as e:
                logger.error(f"Index insert failed after {len(inserted)} of {len(ids)} records: {e}")
                for record_id in inserted:
                    self._index.mark_deleted(record_id)
                self._rollback_store(ids, e)
                raise
            finally:
                self._invalidate()

            self.stats["inserted"] += len(ids)

        logger.info(f"Added {len(ids)} vectors in {time.time() - start_time:.3f}s")
        return ids

    def _rollback_store(self, record_ids: List[str], cause: Exception) -> None:
        failed = self._discard(record_ids)
        if failed:
            logger.error(f"Store and index out of sync for {len(failed)} records")
            raise PartialWriteError(
                f"Write failed and {len(failed)} records could not be rolled back from the store",
                ids=failed, cause=cause) from cause

    def add_vector(self, vector: VectorLike, metadata: Optional[Dict[str, Any]] = None,
                   id: Optional[str] = None) -> str:
        """Add a single vector, returning its id."""
        return self.add_vectors([vector], [metadata], ids=[id] if id is not None else None)[0]

    def update_vector(self, record_id: str, vector: Optional[VectorLike] = None,
                      metadata: Optional[Dict[str, Any]] = None) -> None:
        """
        Replace a record's vector and/or metadata.

        A metadata-only update rewrites the stored record without touching the
        graph. A failed update leaves the previous version stored and searchable.

        Raises:
            NotFoundError: Unknown id
            DimensionMismatchError: Replacement vector has the wrong length
            PartialWriteError: The previous version could not be restored
        """
        with self._write_lock:
            previous = self.store.get(record_id)
            if vector is None and metadata is None:
                return

            if vector is not None:
                array = self._validate_vector(vector, record_id=record_id)
                record = self._make_record(record_id, array,
                                           metadata if metadata is not None else previous.metadata,
                                           created_at=previous.created_at)
            else:
                record = dataclasses.replace(previous.copy(), metadata=dict(metadata),
                                             updated_at=datetime.now(timezone.utc))

            self._persist_quantizer()
            self.store.put(record, overwrite=True)
            try:
                if vector is not None:
                    self._index.update(record_id, array)
            except Exception as e:
                logger.error(f"Index update failed for {record_id}: {e}")
                try:
                    self.store.put(previous, overwrite=True)
                except Exception as restore_error:
                    raise PartialWriteError(
                        f"Update of {record_id} failed and the previous version could not be restored",
                        ids=[record_id], cause=e) from restore_error
                raise
            finally:
                self._invalidate()

            self.stats["updated"] += 1
            logger.debug(f"Updated record {record_id} (vector={'yes' if vector is not None else 'no'})")

    def delete_vector(self, record_id: str) -> bool:
        """
        Delete a record. Idempotent: deleting an unknown id is not an error.

        Returns:
            bool: True if anything was removed
        """
        with self._write_lock:
            removed = self.store.delete(record_id)
            tombstoned = self._index.mark_deleted(record_id)
            if not (removed or tombstoned):
                return False

            self._invalidate()
            self.stats["deleted"] += 1
            if removed != tombstoned:
                logger.warning(f"Record {record_id} was only present in the "
                               f"{'store' if removed else 'index'}")

            if self.config.auto_compact and self._index.tombstone_ratio > self.config.compaction_threshold:
                self.compact()
            return True

    def delete_vectors(self, record_ids: Iterable[str]) -> int:
        """Delete several records, returning how many were present."""
        return sum(1 for record_id in record_ids if self.delete_vector(record_id))

    # Search

    def _build_options(self, options: Union[SearchOptions, Mapping[str, Any], None],
                       overrides: Dict[str, Any]) -> SearchOptions:
        if options is None or isinstance(options, Mapping):
            return SearchOptions.from_mapping(options, **overrides)
        if overrides:
            return dataclasses.replace(options, **overrides)
        return options

    def search(self, query_vector: VectorLike,
               options: Union[SearchOptions, Mapping[str, Any], None] = None,
               **kwargs: Any) -> SearchResult:
        """
        Top-k similarity search.

        Args:
            query_vector (VectorLike): Query vector
            options (Union[SearchOptions, Mapping[str, Any], None]): Search options
            **kwargs: Individual option overrides (top_k, threshold, filters, ...)

        Returns:
            SearchResult: At most top_k hits. Metadata filters are applied
            after ranking, so filtered-out candidates are not backfilled.

        Raises:
            DimensionMismatchError: Query has the wrong length
            InvalidSearchOptionsError: Bad options, including ef < top_k
        """
        start_time = time.time()
        query = SearchQuery.build(query_vector, self._build_options(options, kwargs), self.metric)
        self._validate_vector(query.vector)
        opts = query.options
        ef = opts.ef if opts.ef is not None else max(self.config.ef_search, opts.top_k)

        generation = self._generation
        key = None
        if query.cacheable and self.cache.enabled:
            key = QueryCache.fingerprint(query.vector, **query.cache_params(self.dimensions, ef))
            cached = self.cache.get(key)
            if cached is not None:
                self.stats["searches"] += 1
                self.stats["cached_searches"] += 1
                return dataclasses.replace(cached, cached=True)

        if opts.exact or query.metric is not self.metric:
            records = self._exact_candidates(query)
            self.stats["exact_searches"] += 1
        else:
            records = self._index_candidates(query, ef)

        result = SearchResult(hits=tuple(self._rank(query, records)), metric=query.metric)
        if key is not None and self._generation == generation:
            self.cache.put(key, result)

        search_time = time.time() - start_time
        self.stats["searches"] += 1
        self.stats["total_search_time"] += search_time
        logger.debug(f"Search top_k={opts.top_k} ef={ef} returned {len(result)} hits "
                     f"in {search_time * 1000:.1f}ms")
        return result

    def _index_candidates(self, query: SearchQuery, ef: int) -> List[VectorRecord]:
        with self._index_lock.read_lock():
            hits = self._index.search(query.vector, query.options.top_k, ef)

        ids = [label for label, _ in hits]
        found = self.store.get_many(ids)
        missing = [i for i in ids if i not in found]
        if missing:
            logger.warning(f"Index returned {len(missing)} ids missing from the store: {missing[:5]}")
        return [found[i] for i in ids if i in found]

    def _exact_candidates(self, query: SearchQuery) -> List[VectorRecord]:
        records = list(self.store.scan())
        if not records:
            return []
        searcher = FlatSearcher(self.dimensions, query.metric)
        searcher.add([r.id for r in records], np.stack([self._original_vector(r) for r in records]))
        by_id = {r.id: r for r in records}
        return [by_id[record_id] for record_id, _ in searcher.search(query.vector, query.options.top_k)]

    def _rank(self, query: SearchQuery, records: List[VectorRecord]) -> List[SearchHit]:
        """Exact re-score, take top_k, then filter and apply the threshold."""
        if not records:
            return []
        opts = query.options
        matrix = np.stack([self._original_vector(r) for r in records])
        scores = batch_scores(query.vector, matrix, query.metric)
        ranked = sorted(zip(records, scores),
                        key=lambda pair: (-ranking_key(float(pair[1]), query.metric), pair[0].id))
        ranked = ranked[:opts.top_k]

        predicate = compile_filter(opts.filters)
        hits = []
        for record, score in ranked:
            if predicate is not None and not predicate(record.metadata):
                continue
            if not passes_threshold(float(score), opts.threshold, query.metric):
                continue
            hits.append(SearchHit(
                id=record.id,
                score=float(score),
                metadata=dict(record.metadata) if opts.include_metadata else None,
            ))
        return hits

    # Lookups

    def get_record(self, record_id: str) -> VectorRecord:
        return self.store.get(record_id)

    def get_vector(self, record_id: str) -> np.ndarray:
        """The stored float vector (dequantized if the original was dropped)."""
        return self._original_vector(self.store.get(record_id)).copy()

    def find_similar(self, record_id: str, top_k: int = 10, **options: Any) -> SearchResult:
        """Records most similar to an existing one, excluding itself."""
        ef = options.pop("ef", None)
        if isinstance(ef, int) and ef < top_k:
            raise InvalidSearchOptionsError(f"ef ({ef}) must be >= top_k ({top_k})", {"ef": ef, "top_k": top_k})
        vector = self.get_vector(record_id)
        if isinstance(ef, int):
            # one extra slot for the record itself
            ef += 1
        result = self.search(vector, top_k=top_k + 1, ef=ef, **options)
        hits = tuple(hit for hit in result if hit.id != record_id)[:top_k]
        return dataclasses.replace(result, hits=hits)

    def count(self) -> int:
        return self.store.count()

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, record_id: str) -> bool:
        return self.store.contains(record_id)

    # Maintenance

    def create_index(self) -> Dict[str, Any]:
        """Build the graph from the store contents (e.g. after a bulk load)."""
        return self.rebuild_index()

    def rebuild_index(self) -> Dict[str, Any]:
        """
        Rebuild the graph from the store (blue-green).

        The new graph is built off to the side while searches keep using the
        current one; writes wait behind the rebuild. The active graph is then
        swapped in one step and the old one, with its tombstones, dropped.

        Returns:
            Dict[str, Any]: Rebuild results
        """
        with self._write_lock:
            start_time = time.time()
            fresh = self._new_index()
            for record in self.store.scan():
                fresh.add(record.id, self._original_vector(record))

            with self._index_lock.write_lock():
                previous, self._index = self._index, fresh
            self._invalidate()
            self.stats["rebuilds"] += 1

            result = {
                "records": len(fresh),
                "dropped_tombstones": previous.tombstone_count,
                "rebuild_time_seconds": time.time() - start_time,
            }
        logger.info(f"Index rebuilt with {result['records']} records, dropped "
                    f"{result['dropped_tombstones']} tombstones in {result['rebuild_time_seconds']:.2f}s")
        return result

    def compact(self, force: bool = False) -> Dict[str, Any]:
        """
        Rebuild the graph when the tombstone ratio exceeds the threshold
        (or always, with ``force``), and compact the store's own log.
        """
        with self._write_lock:
            ratio = self._index.tombstone_ratio
            if not force and ratio <= self.config.compaction_threshold:
                return {"compacted": False, "tombstone_ratio": ratio}

            result = self.rebuild_index()
            result.update({
                "compacted": True,
                "tombstone_ratio": ratio,
                "store": self.store.compact(),
            })
            self.stats["compactions"] += 1
            return result

    def evaluate_recall(self, queries: Sequence[VectorLike], top_k: int = 10,
                        ef: Optional[int] = None) -> float:
        """
        Mean overlap between approximate and exact top-k over a query set.

        Returns:
            float: Recall in [0, 1]; 1.0 for an empty database
        """
        records = list(self.store.scan())
        if not records:
            return 1.0
        searcher = FlatSearcher(self.dimensions, self.metric)
        searcher.add([r.id for r in records], np.stack([self._original_vector(r) for r in records]))

        index = self.index
        total = 0.0
        for query in queries:
            truth = {record_id for record_id, _ in searcher.search(query, top_k)}
            approx = {label for label, _ in index.search(query, top_k, ef)}
            total += len(truth & approx) / len(truth)
        recall = total / len(queries) if len(queries) else 1.0
        logger.info(f"Recall@{top_k} (ef={ef or max(self.config.ef_search, top_k)}) over "
                    f"{len(queries)} queries: {recall:.3f}")
        return recall

    # Snapshots

    def export_snapshot(self, path: Union[str, Path]) -> int:
        """Write every record to a portable snapshot file; returns the record count."""
        header = SnapshotHeader(
            dimensions=self.dimensions,
            metric=self.metric.value,
            quantization=self.quantizer is not None,
            quantizer=self.quantizer.to_dict() if self.quantizer is not None else None,
        )
        with self._write_lock:
            return write_snapshot(path, header, self.store.scan())

    def import_snapshot(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a snapshot into the store (replacing records with the same id)
        and rebuild the index once.

        An empty quantized database adopts the snapshot quantizer as is. A
        non-empty one keeps its own ranges and re-quantizes imported records.
        """
        header = read_snapshot_header(path)
        if header.dimensions != self.dimensions or header.quantization != (self.quantizer is not None):
            raise ConfigurationError(
                "Snapshot does not match the database configuration",
                {"snapshot": {"dimensions": header.dimensions, "quantization": header.quantization},
                 "configured": self.config.persisted_fields()})
        if header.metric != self.metric.value:
            logger.warning(f"Snapshot metric {header.metric} differs from database metric "
                           f"{self.metric.value}; the index is built with {self.metric.value}")

        with self._write_lock:
            source_quantizer = None
            if header.quantizer is not None and self.quantizer is not None:
                source_quantizer = ScalarQuantizer.from_dict(header.quantizer)
                if self.store.count() == 0:
                    self.quantizer = source_quantizer
                    self._persisted_quantizer_version = -1
                    source_quantizer = None
                    self._persist_quantizer()

            loaded = 0
            batch: List[VectorRecord] = []
            for record in iter_snapshot(path):
                if source_quantizer is not None:
                    record = self._reencode(record, source_quantizer)
                batch.append(record)
                if len(batch) >= self.config.max_batch_size:
                    self._persist_quantizer()
                    self.store.put_many(batch, overwrite=True)
                    loaded += len(batch)
                    batch = []
            if batch:
                self._persist_quantizer()
                self.store.put_many(batch, overwrite=True)
                loaded += len(batch)

            result = self.rebuild_index()
        logger.info(f"Imported {loaded} records from snapshot {path}")
        return {"loaded": loaded, **result}

    def _reencode(self, record: VectorRecord, source: ScalarQuantizer) -> VectorRecord:
        """
        Re-quantize an imported record with the live quantizer.

        Codes from the snapshot refer to its own range versions; they are
        decoded with the snapshot quantizer when no float vector was kept.
        """
        vector = record.vector if record.vector is not None else source.dequantize(record.quantized)
        return dataclasses.replace(
            record,
            vector=vector if self.config.retain_original_vectors else None,
            quantized=self.quantizer.quantize(vector),
        )

    @classmethod
    def from_snapshot(cls, path: Union[str, Path], config: Optional[VectorDBConfig] = None,
                      store: Optional[VectorStore] = None) -> 'VectorDatabase':
        """Build a database from a snapshot, deriving the configuration from its header if needed."""
        if config is None:
            header = read_snapshot_header(path)
            config = VectorDBConfig(dimensions=header.dimensions, metric=header.metric,
                                    quantization=header.quantization)
        database = cls(config, store=store)
        database.import_snapshot(path)
        return database

    # Utility Methods

    def get_statistics(self) -> Dict[str, Any]:
        """Get comprehensive statistics about the database."""
        index = self.index
        searches = self.stats["searches"] - self.stats["cached_searches"]
        return {
            "records": self.count(),
            "dimensions": self.dimensions,
            "metric": self.metric.value,
            "backend": self.store.backend_name,
            "index": index.get_statistics(),
            "cache": self.cache.get_statistics(),
            "store": self.store.get_statistics(),
            "quantization": {
                "enabled": self.quantizer is not None,
                "range_version": self.quantizer.version if self.quantizer is not None else None,
                "retain_original_vectors": self.config.retain_original_vectors,
            },
            "operations": {
                **self.stats,
                "average_search_time_ms": (self.stats["total_search_time"] / searches * 1000
                                           if searches else 0.0),
            },
        }

    def health_check(self) -> Dict[str, Any]:
        """Check backend reachability and store/index agreement."""
        store_health = self.store.health_check()
        index = self.index
        records = store_health.get("records")
        in_sync = records is None or records == len(index)
        status = store_health["status"]
        if status == "healthy" and not in_sync:
            status = "degraded"
        return {
            "status": status,
            "store": store_health,
            "index": {"active_nodes": len(index), "tombstones": index.tombstone_count},
            "synchronized": in_sync,
            "last_check": datetime.now(timezone.utc).isoformat(),
        }

    def clear_cache(self) -> None:
        self.cache.invalidate()

    def close(self) -> None:
        """Release the store and drop cached results."""
        logger.info("Closing vector database...")
        self.cache.invalidate()
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
