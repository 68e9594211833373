"""
Record and Query Schema Definitions

Defines the value types shared by every store backend, the index and the
database orchestrator: stored vector records, per-query search options and
ranked search results.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import numpy as np

from ..exceptions import ConfigurationError, InvalidSearchOptionsError
from ..similarity.distance import Metric, VectorLike, as_vector
from ..similarity.quantizer import QuantizedVector
from .filters import validate_filter

MetadataFilter = Union[Dict[str, Any], Callable[[Dict[str, Any]], bool]]


def new_record_id() -> str:
    """System-assigned id for records added without one."""
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


@dataclass
class VectorRecord:
    """
    A stored vector with its metadata.

    ``vector`` holds the authoritative float values. It may only be None when
    the record carries a ``quantized`` form and the original floats were
    dropped to save memory.
    """

    id: str
    vector: Optional[np.ndarray]
    metadata: Dict[str, Any] = field(default_factory=dict)
    quantized: Optional[QuantizedVector] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Normalize fields."""
        if not isinstance(self.id, str) or not self.id:
            raise ValueError(f"Record id must be a non-empty string, got {self.id!r}")

        if self.vector is not None:
            self.vector = as_vector(self.vector)
        elif self.quantized is None:
            raise ValueError(f"Record {self.id} has neither a vector nor a quantized form")

        self.metadata = dict(self.metadata or {})
        for key in self.metadata:
            if not isinstance(key, str):
                raise ValueError(f"Metadata keys must be strings, got {key!r}")

        if self.created_at is None:
            self.created_at = _utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def dimensions(self) -> int:
        if self.vector is not None:
            return int(self.vector.shape[0])
        return int(self.quantized.codes.shape[0])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary for JSON or document storage."""
        return {
            'id': self.id,
            'vector': self.vector.tolist() if self.vector is not None else None,
            'metadata': self.metadata,
            'quantized': self.quantized.to_dict() if self.quantized is not None else None,
            'dimensions': self.dimensions,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'VectorRecord':
        """Create a record from a stored dictionary."""
        quantized = data.get('quantized')
        return cls(
            id=data['id'],
            vector=data.get('vector'),
            metadata=data.get('metadata') or {},
            quantized=QuantizedVector.from_dict(quantized) if quantized else None,
            created_at=_parse_time(data.get('created_at')),
            updated_at=_parse_time(data.get('updated_at')),
        )

    def copy(self) -> 'VectorRecord':
        return VectorRecord(
            id=self.id,
            vector=self.vector.copy() if self.vector is not None else None,
            metadata=dict(self.metadata),
            quantized=self.quantized,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, VectorRecord):
            return NotImplemented
        if self.id != other.id or self.metadata != other.metadata or self.quantized != other.quantized:
            return False
        if self.vector is None or other.vector is None:
            return self.vector is None and other.vector is None
        return bool(np.array_equal(self.vector, other.vector))


@dataclass
class SearchOptions:
    """
    Per-query options.

    ``algorithm`` defaults to the index metric. ``threshold`` is a minimum
    similarity for cosine/dotProduct and a maximum distance for euclidean.
    ``ef`` defaults to max(configured ef_search, top_k).
    """

    top_k: int = 10
    algorithm: Optional[Union[str, Metric]] = None
    threshold: Optional[float] = None
    filters: Optional[MetadataFilter] = None
    include_metadata: bool = True
    use_cache: bool = True
    ef: Optional[int] = None
    exact: bool = False

    _ALIASES = {
        'topK': 'top_k',
        'includeMetadata': 'include_metadata',
        'useCache': 'use_cache',
    }

    def validate(self) -> 'SearchOptions':
        """Check option values, raising InvalidSearchOptionsError."""
        if isinstance(self.top_k, bool) or not isinstance(self.top_k, int) or self.top_k <= 0:
            raise InvalidSearchOptionsError(f"top_k must be a positive integer, got {self.top_k!r}",
                                            {"top_k": self.top_k})
        if self.ef is not None:
            if isinstance(self.ef, bool) or not isinstance(self.ef, int) or self.ef <= 0:
                raise InvalidSearchOptionsError(f"ef must be a positive integer, got {self.ef!r}",
                                                {"ef": self.ef})
            if self.ef < self.top_k:
                raise InvalidSearchOptionsError(
                    f"ef ({self.ef}) must be >= top_k ({self.top_k})",
                    {"ef": self.ef, "top_k": self.top_k})
        if self.threshold is not None and (isinstance(self.threshold, bool)
                                           or not isinstance(self.threshold, (int, float))):
            raise InvalidSearchOptionsError(f"threshold must be a number, got {self.threshold!r}",
                                            {"threshold": self.threshold})
        if self.filters is not None and not (isinstance(self.filters, dict) or callable(self.filters)):
            raise InvalidSearchOptionsError("filters must be a dict or a callable",
                                            {"filters": repr(self.filters)})
        if isinstance(self.filters, dict):
            validate_filter(self.filters)
        if self.algorithm is not None:
            try:
                self.algorithm = Metric.parse(self.algorithm)
            except ConfigurationError as e:
                raise InvalidSearchOptionsError(e.message, e.details)
        return self

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]] = None, **overrides: Any) -> 'SearchOptions':
        """Build options from a mapping that may use camelCase keys."""
        values: Dict[str, Any] = {}
        for key, value in {**(options or {}), **overrides}.items():
            name = cls._ALIASES.get(key, key)
            if name not in cls.__dataclass_fields__ or name.startswith('_'):
                raise InvalidSearchOptionsError(f"Unknown search option: {key}", {"option": key})
            values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class SearchQuery:
    """A query vector paired with validated options."""

    vector: np.ndarray
    options: SearchOptions
    metric: Metric

    @classmethod
    def build(cls, vector: VectorLike, options: SearchOptions, default_metric: Metric) -> 'SearchQuery':
        options.validate()
        metric = Metric.parse(options.algorithm) if options.algorithm is not None else default_metric
        return cls(vector=as_vector(vector), options=options, metric=metric)

    @property
    def cacheable(self) -> bool:
        return self.options.use_cache and not callable(self.options.filters)

    def cache_params(self, dimensions: int, ef: int) -> Dict[str, Any]:
        """Parameters folded into the cache fingerprint."""
        return {
            'dimensions': dimensions,
            'top_k': self.options.top_k,
            'algorithm': self.metric.value,
            'threshold': self.options.threshold,
            'filters': self.options.filters,
            'include_metadata': self.options.include_metadata,
            'ef': ef,
            'exact': self.options.exact,
        }


@dataclass(frozen=True)
class SearchHit:
    """One ranked result."""

    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'id': self.id, 'score': self.score}
        if self.metadata is not None:
            result['metadata'] = self.metadata
        return result


@dataclass(frozen=True)
class SearchResult:
    """
    Ranked search results.

    Sorted by score descending for cosine/dotProduct and ascending for
    euclidean distance, ties broken by ascending id.
    """

    hits: Tuple[SearchHit, ...]
    metric: Metric
    cached: bool = False

    def __iter__(self) -> Iterator[SearchHit]:
        return iter(self.hits)

    def __len__(self) -> int:
        return len(self.hits)

    def __getitem__(self, index: int) -> SearchHit:
        return self.hits[index]

    @property
    def ids(self) -> List[str]:
        return [hit.id for hit in self.hits]

    @property
    def scores(self) -> List[float]:
        return [hit.score for hit in self.hits]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'metric': self.metric.value,
            'cached': self.cached,
            'results': [hit.to_dict() for hit in self.hits],
        }
