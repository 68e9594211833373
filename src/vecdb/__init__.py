"""
vecdb - Vector Similarity Search Engine

Stores embedding vectors with metadata, indexes them in an HNSW graph and
answers top-k similarity queries with metadata filtering, optional 8-bit
quantization and a query result cache. Storage is pluggable: in-memory,
local append-log file, or MongoDB, optionally fronted by a memory cache.
"""

from .config import VectorDBConfig
from .engine.database import VectorDatabase
from .exceptions import (BackendUnavailableError, ConfigurationError, DimensionMismatchError,
                         DuplicateIdError, InvalidSearchOptionsError, NotFoundError, PartialWriteError,
                         SnapshotFormatError, VectorDBError)
from .similarity.distance import Metric
from .vector_store.schema import SearchHit, SearchOptions, SearchResult, VectorRecord

__version__ = "1.0.0"

__all__ = [
    'VectorDatabase',
    'VectorDBConfig',
    'Metric',
    'SearchOptions',
    'SearchResult',
    'SearchHit',
    'VectorRecord',
    'VectorDBError',
    'ConfigurationError',
    'DimensionMismatchError',
    'DuplicateIdError',
    'NotFoundError',
    'InvalidSearchOptionsError',
    'PartialWriteError',
    'BackendUnavailableError',
    'SnapshotFormatError',
]
