"""Backend selection for a database configuration."""

import logging

from ..config import VectorDBConfig
from .base import VectorStore
from .file_store import FileVectorStore
from .hybrid_store import HybridVectorStore
from .memory_store import MemoryVectorStore
from .mongo_store import MongoVectorStore

logger = logging.getLogger(__name__)


def create_vector_store(config: VectorDBConfig) -> VectorStore:
    """
    Build the store named by ``config.backend``, wrapped in the memory cache
    layer when ``config.hybrid`` is set.
    """
    config.validate()

    if config.backend == "memory":
        store: VectorStore = MemoryVectorStore(config.dimensions)
    elif config.backend == "file":
        store = FileVectorStore(config.dimensions, path=config.file_path, fsync=config.fsync)
    else:
        store = MongoVectorStore(
            config.dimensions,
            connection_string=config.mongo_uri,
            database_name=config.mongo_database,
            collection_name=config.mongo_collection,
            max_batch_size=config.max_batch_size,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay,
            retry_max_delay=config.retry_max_delay,
            max_concurrency=config.max_concurrency,
        )

    if config.hybrid:
        store = HybridVectorStore(store, cache_capacity=config.hybrid_cache_capacity)

    logger.info(f"Created {store.backend_name} vector store ({config.dimensions} dimensions)")
    return store
