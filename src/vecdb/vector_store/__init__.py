"""
Vector Store Package

Persistence for vector records behind one contract, with interchangeable
backends selected once per database:

- memory_store: Volatile in-memory map, fastest
- file_store: Local append-log file with compaction
- mongo_store: MongoDB documents with batched, retried writes
- hybrid_store: In-memory cache layer in front of a durable backend

Components:
- schema: Record, search option and result types
- filters: Metadata filter matching
- snapshot: Portable binary export/import format
"""

from .base import VectorStore
from .factory import create_vector_store
from .file_store import FileVectorStore
from .hybrid_store import HybridVectorStore
from .memory_store import MemoryVectorStore
from .mongo_store import MongoVectorStore
from .schema import SearchHit, SearchOptions, SearchQuery, SearchResult, VectorRecord

__all__ = [
    'VectorStore',
    'MemoryVectorStore',
    'FileVectorStore',
    'MongoVectorStore',
    'HybridVectorStore',
    'create_vector_store',
    'VectorRecord',
    'SearchOptions',
    'SearchQuery',
    'SearchHit',
    'SearchResult',
]
