"""
In-Memory Vector Store

Volatile dict-backed store. Fastest backend; also used as the write-through
cache layer in front of the durable backends.
"""

import copy
import logging
from collections import OrderedDict
from typing import Any, Dict, Iterator, Optional

from ..exceptions import DuplicateIdError, NotFoundError
from ..index.locks import RWLock
from .base import RecordPredicate, VectorStore, compile_predicate
from .schema import VectorRecord

logger = logging.getLogger(__name__)


class MemoryVectorStore(VectorStore):
    """
    In-memory implementation of the vector store contract.

    With ``capacity`` set, the store evicts its least recently used record
    once full; this is only meaningful when it fronts a durable backend.
    """

    backend_name = "memory"

    def __init__(self, dimensions: int, capacity: Optional[int] = None):
        """
        Initialize the in-memory store.

        Args:
            dimensions (int): Vector dimensionality
            capacity (Optional[int]): Maximum records kept, None for unbounded
        """
        super().__init__(dimensions)
        self.capacity = capacity
        self._records: "OrderedDict[str, VectorRecord]" = OrderedDict()
        self._index_metadata: Dict[str, Dict[str, Any]] = {}
        self._lock = RWLock()
        self.evictions = 0

    def put(self, record: VectorRecord, overwrite: bool = False) -> None:
        self.validate_record(record)
        with self._lock.write_lock():
            if not overwrite and record.id in self._records:
                raise DuplicateIdError(record.id)
            self._records[record.id] = record.copy()
            self._records.move_to_end(record.id)
            self._evict_locked()

    def _evict_locked(self) -> None:
        if self.capacity is None:
            return
        while len(self._records) > self.capacity:
            evicted_id, _ = self._records.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Evicted record {evicted_id} from memory store")

    def get(self, record_id: str) -> VectorRecord:
        with self._lock.read_lock():
            record = self._records.get(record_id)
        if record is None:
            raise NotFoundError(record_id)
        return record.copy()

    def touch(self, record_id: str) -> None:
        """Mark a record as recently used."""
        with self._lock.write_lock():
            if record_id in self._records:
                self._records.move_to_end(record_id)

    def delete(self, record_id: str) -> bool:
        with self._lock.write_lock():
            return self._records.pop(record_id, None) is not None

    def scan(self, predicate: Optional[RecordPredicate] = None) -> Iterator[VectorRecord]:
        check = compile_predicate(predicate)
        with self._lock.read_lock():
            snapshot = list(self._records.values())
        for record in snapshot:
            if check is None or check(record):
                yield record.copy()

    def count(self) -> int:
        return len(self._records)

    def contains(self, record_id: str) -> bool:
        return record_id in self._records

    def clear(self) -> None:
        with self._lock.write_lock():
            self._records.clear()

    def put_index_metadata(self, name: str, document: Dict[str, Any]) -> None:
        with self._lock.write_lock():
            self._index_metadata[name] = copy.deepcopy(document)

    def get_index_metadata(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock.read_lock():
            document = self._index_metadata.get(name)
        return copy.deepcopy(document) if document is not None else None

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats.update({"capacity": self.capacity, "evictions": self.evictions})
        return stats
