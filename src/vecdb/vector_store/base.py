"""
Vector Store Contract

One interface shared by every persistence backend. A backend is chosen once
when a database is constructed and never switched mid-lifetime.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from ..exceptions import DimensionMismatchError, NotFoundError
from .filters import matches_filter
from .schema import VectorRecord

RecordPredicate = Union[Callable[[VectorRecord], bool], Mapping[str, Any]]


def compile_predicate(predicate: Optional[RecordPredicate]) -> Optional[Callable[[VectorRecord], bool]]:
    """Record predicates may be callables or metadata filter documents."""
    if predicate is None:
        return None
    if isinstance(predicate, Mapping):
        return lambda record: matches_filter(record.metadata, predicate)
    return predicate


class VectorStore(ABC):
    """Abstract interface for vector record persistence."""

    backend_name = "abstract"

    def __init__(self, dimensions: int):
        self.dimensions = dimensions

    def validate_record(self, record: VectorRecord) -> None:
        """Reject records whose dimensionality disagrees with the store."""
        if record.dimensions != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=record.dimensions,
                                         record_id=record.id)

    @abstractmethod
    def put(self, record: VectorRecord, overwrite: bool = False) -> None:
        """
        Write a record.

        Raises DuplicateIdError on the create path (``overwrite=False``) when
        the id already exists; replaces the stored record otherwise.
        """

    def put_many(self, records: List[VectorRecord], overwrite: bool = False) -> None:
        """Write several records; backends override this to batch."""
        for record in records:
            self.validate_record(record)
        for record in records:
            self.put(record, overwrite=overwrite)

    @abstractmethod
    def get(self, record_id: str) -> VectorRecord:
        """Return a record, raising NotFoundError for unknown ids."""

    def get_many(self, record_ids: Iterable[str]) -> Dict[str, VectorRecord]:
        """Return the records that exist among the given ids."""
        found = {}
        for record_id in record_ids:
            try:
                found[record_id] = self.get(record_id)
            except NotFoundError:
                continue
        return found

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Delete a record. Idempotent; returns False if nothing was deleted."""

    @abstractmethod
    def scan(self, predicate: Optional[RecordPredicate] = None) -> Iterator[VectorRecord]:
        """Lazily iterate records matching a predicate. Each call starts over."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""

    def contains(self, record_id: str) -> bool:
        try:
            self.get(record_id)
            return True
        except NotFoundError:
            return False

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""

    @abstractmethod
    def put_index_metadata(self, name: str, document: Dict[str, Any]) -> None:
        """Persist an index-level document (configuration, quantizer state)."""

    @abstractmethod
    def get_index_metadata(self, name: str) -> Optional[Dict[str, Any]]:
        """Load an index-level document, or None if it was never written."""

    def compact(self) -> Optional[Dict[str, Any]]:
        """Reclaim space held by deleted records. Backends without dead entries do nothing."""
        return None

    def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "backend": self.backend_name, "records": self.count()}

    def get_statistics(self) -> Dict[str, Any]:
        return {"backend": self.backend_name, "dimensions": self.dimensions, "records": self.count()}

    def close(self) -> None:
        """Release backend resources."""

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, record_id: str) -> bool:
        return self.contains(record_id)

    def __iter__(self) -> Iterator[VectorRecord]:
        return self.scan()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
