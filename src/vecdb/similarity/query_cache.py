"""
Query Cache Module

Bounded least-recently-used cache mapping a fingerprint of
(query vector, search options) to a previously computed search result.
Any write to the database invalidates the whole cache.
"""

import hashlib
import json
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional

import numpy as np
import logging

logger = logging.getLogger(__name__)


class QueryCache:
    """
    Thread-safe LRU cache for search results.

    The lock only guards the recency bookkeeping, so cache reads never wait
    on index writers.
    """

    def __init__(self, max_entries: int = 256, enabled: bool = True):
        """
        Initialize the query cache.

        Args:
            max_entries (int): Maximum number of cached results
            enabled (bool): Whether lookups and stores are performed at all
        """
        self.max_entries = max(0, int(max_entries))
        self.enabled = enabled and self.max_entries > 0
        self._entries: "OrderedDict[str, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.invalidations = 0

        logger.info(f"QueryCache initialized with max_entries={self.max_entries}, enabled={self.enabled}")

    @staticmethod
    def fingerprint(query_vector: np.ndarray, **params: Any) -> str:
        """
        Generate a deterministic cache key for a query.

        Args:
            query_vector (np.ndarray): Query vector
            **params: Search parameters that influence the result

        Returns:
            str: SHA256 hex digest
        """
        vector = np.ascontiguousarray(query_vector, dtype=np.float32)
        digest = hashlib.sha256()
        digest.update(str(vector.shape[0]).encode())
        digest.update(vector.tobytes())
        digest.update(json.dumps(params, sort_keys=True, default=str).encode())
        return digest.hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for a key, or None on a miss."""
        if not self.enabled:
            return None
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return value

    def put(self, key: str, value: Any) -> None:
        """Store a value, evicting the least recently used entry when full."""
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1

    def invalidate(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            if self._entries:
                logger.debug(f"Invalidating {len(self._entries)} cached query results")
            self._entries.clear()
            self.invalidations += 1

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_statistics(self) -> Dict[str, Any]:
        """Get statistics about cache usage."""
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "enabled": self.enabled,
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / lookups if lookups else 0.0,
                "evictions": self.evictions,
                "invalidations": self.invalidations,
            }
