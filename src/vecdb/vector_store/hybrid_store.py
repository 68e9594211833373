"""
Hybrid Vector Store

Combines an in-memory cache layer with a durable backend:
- Durable backend (file or MongoDB): source of truth, survives restarts
- Memory layer: hot copies of recently used records for fast point reads

Writes go through to the durable backend first and only then to the cache,
so an acknowledged write is always persisted.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..exceptions import NotFoundError
from .base import RecordPredicate, VectorStore
from .memory_store import MemoryVectorStore
from .schema import VectorRecord

logger = logging.getLogger(__name__)


class HybridVectorStore(VectorStore):
    """
    Write-through memory cache over a durable vector store.

    Features:
    - Lazy cache population on read misses
    - Optional cache capacity with LRU eviction
    - Scans and counts always served by the durable backend
    """

    backend_name = "hybrid"

    def __init__(self, durable: VectorStore, cache_capacity: Optional[int] = None):
        """
        Initialize hybrid vector store.

        Args:
            durable (VectorStore): Backend holding the authoritative records
            cache_capacity (Optional[int]): Maximum cached records, None for unbounded
        """
        super().__init__(durable.dimensions)
        self.durable = durable
        self.cache = MemoryVectorStore(durable.dimensions, capacity=cache_capacity)
        self.cache_hits = 0
        self.cache_misses = 0

        logger.info(f"Hybrid store initialized over {durable.backend_name} backend")

    def put(self, record: VectorRecord, overwrite: bool = False) -> None:
        self.durable.put(record, overwrite=overwrite)
        self.cache.put(record, overwrite=True)

    def put_many(self, records: List[VectorRecord], overwrite: bool = False) -> None:
        self.durable.put_many(records, overwrite=overwrite)
        for record in records:
            self.cache.put(record, overwrite=True)

    def get(self, record_id: str) -> VectorRecord:
        try:
            record = self.cache.get(record_id)
            self.cache.touch(record_id)
            self.cache_hits += 1
            return record
        except NotFoundError:
            self.cache_misses += 1

        record = self.durable.get(record_id)
        self.cache.put(record, overwrite=True)
        return record

    def get_many(self, record_ids: Iterable[str]) -> Dict[str, VectorRecord]:
        found = {}
        missing = []
        for record_id in record_ids:
            try:
                found[record_id] = self.cache.get(record_id)
                self.cache_hits += 1
            except NotFoundError:
                self.cache_misses += 1
                missing.append(record_id)

        if missing:
            loaded = self.durable.get_many(missing)
            for record in loaded.values():
                self.cache.put(record, overwrite=True)
            found.update(loaded)
        return found

    def delete(self, record_id: str) -> bool:
        deleted = self.durable.delete(record_id)
        self.cache.delete(record_id)
        return deleted

    def scan(self, predicate: Optional[RecordPredicate] = None) -> Iterator[VectorRecord]:
        return self.durable.scan(predicate)

    def count(self) -> int:
        return self.durable.count()

    def contains(self, record_id: str) -> bool:
        return self.cache.contains(record_id) or self.durable.contains(record_id)

    def clear(self) -> None:
        self.durable.clear()
        self.cache.clear()

    def compact(self) -> Optional[Dict[str, Any]]:
        return self.durable.compact()

    def put_index_metadata(self, name: str, document: Dict[str, Any]) -> None:
        self.durable.put_index_metadata(name, document)

    def get_index_metadata(self, name: str) -> Optional[Dict[str, Any]]:
        return self.durable.get_index_metadata(name)

    def health_check(self) -> Dict[str, Any]:
        durable_health = self.durable.health_check()
        return {
            "status": durable_health["status"],
            "backend": self.backend_name,
            "durable": durable_health,
            "cached_records": self.cache.count(),
        }

    def get_statistics(self) -> Dict[str, Any]:
        lookups = self.cache_hits + self.cache_misses
        return {
            "backend": self.backend_name,
            "dimensions": self.dimensions,
            "records": self.count(),
            "durable": self.durable.get_statistics(),
            "cache": {
                **self.cache.get_statistics(),
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "hit_rate": self.cache_hits / lookups if lookups else 0.0,
            },
        }

    def close(self) -> None:
        """Close the durable backend and drop cached records."""
        logger.info("Closing hybrid vector store...")
        self.cache.clear()
        self.durable.close()
