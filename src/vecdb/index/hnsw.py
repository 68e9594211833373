"""
HNSW Graph Index

Hierarchical navigable small-world graph for approximate nearest neighbor
search over vector ids. Supports insertion, soft deletion (tombstones) and
top-K search with a configurable beam width.

Vectors are held in a growable float32 matrix so neighbor expansion can score
a whole adjacency list with one numpy call. Traversal always works on an
internal "lower is better" distance:

- cosine:      1 - dot(a/|a|, b/|b|)
- dotProduct:  -dot(a, b)
- euclidean:   |a - b|
"""

import heapq
import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from ..exceptions import DimensionMismatchError, DuplicateIdError, InvalidSearchOptionsError
from ..similarity.distance import Metric, VectorLike, as_vector
from .locks import RWLock

logger = logging.getLogger(__name__)

INITIAL_CAPACITY = 1024


@dataclass(frozen=True)
class IndexNode:
    """Read-only view of one graph node."""

    id: str
    level: int
    neighbors: Tuple[Tuple[str, ...], ...]
    deleted: bool


class HNSWIndex:
    """
    HNSW approximate nearest neighbor index.

    Each node moves through ``absent -> active -> tombstoned``. A label that
    is added again after deletion gets a brand new node; the old one stays in
    the graph as a navigable tombstone until the index is rebuilt.
    """

    def __init__(self,
                 dimensions: int,
                 metric: Union[str, Metric] = Metric.COSINE,
                 m: int = 16,
                 ef_construction: int = 200,
                 ef_search: int = 64,
                 level_multiplier: Optional[float] = None,
                 seed: Optional[int] = None):
        """
        Initialize an empty graph.

        Args:
            dimensions (int): Vector dimensionality
            metric (Union[str, Metric]): Metric used for graph traversal
            m (int): Maximum neighbors per node per layer
            ef_construction (int): Beam width used while inserting
            ef_search (int): Default beam width used while searching
            level_multiplier (Optional[float]): Layer assignment scale, 1/ln(m) by default
            seed (Optional[int]): Seed for reproducible layer assignment
        """
        if m < 2:
            raise ValueError(f"m must be >= 2, got {m}")
        self.dimensions = dimensions
        self.metric = Metric.parse(metric)
        self.m = m
        self.ef_construction = max(ef_construction, m)
        self.ef_search = ef_search
        self.level_multiplier = level_multiplier if level_multiplier is not None else 1.0 / math.log(m)
        self._rng = random.Random(seed)
        self.lock = RWLock()

        self._vectors = np.zeros((INITIAL_CAPACITY, dimensions), dtype=np.float32)
        self._labels: List[str] = []
        self._levels: List[int] = []
        self._links: List[List[List[int]]] = []
        self._deleted: List[bool] = []
        self._active: Dict[str, int] = {}

        self._entry_point: Optional[int] = None
        self._max_level = -1

    # Vector preparation and scoring

    def _prepare(self, vector: VectorLike) -> np.ndarray:
        array = as_vector(vector)
        if array.shape[0] != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=array.shape[0])
        if self.metric is Metric.COSINE:
            norm = float(np.linalg.norm(array))
            if norm > 0:
                array = array / norm
        return array

    def _distances(self, query: np.ndarray, nodes: List[int]) -> np.ndarray:
        rows = self._vectors[nodes]
        if self.metric is Metric.EUCLIDEAN:
            return np.linalg.norm(rows - query, axis=1)
        dots = rows @ query
        if self.metric is Metric.COSINE:
            return 1.0 - dots
        return -dots

    def _random_level(self) -> int:
        return int(-math.log(1.0 - self._rng.random()) * self.level_multiplier)

    def _allocate(self, label: str, vector: np.ndarray, level: int) -> int:
        node = len(self._labels)
        if node == self._vectors.shape[0]:
            grown = np.zeros((self._vectors.shape[0] * 2, self.dimensions), dtype=np.float32)
            grown[:node] = self._vectors
            self._vectors = grown
        self._vectors[node] = vector
        self._labels.append(label)
        self._levels.append(level)
        self._links.append([[] for _ in range(level + 1)])
        self._deleted.append(False)
        return node

    # Graph traversal

    def _search_layer(self, query: np.ndarray, entry_points: List[int], ef: int,
                      layer: int) -> List[Tuple[float, int]]:
        """Beam search on one layer; returns up to ef (distance, node) pairs, nearest first."""
        visited = set(entry_points)
        distances = self._distances(query, entry_points)
        candidates = [(float(d), n) for d, n in zip(distances, entry_points)]
        heapq.heapify(candidates)
        results = [(-d, n) for d, n in candidates]
        heapq.heapify(results)
        while len(results) > ef:
            heapq.heappop(results)

        while candidates:
            dist, node = heapq.heappop(candidates)
            if dist > -results[0][0] and len(results) >= ef:
                break

            fresh = [n for n in self._links[node][layer] if n not in visited]
            if not fresh:
                continue
            visited.update(fresh)

            for d, neighbor in zip(self._distances(query, fresh), fresh):
                d = float(d)
                if len(results) < ef or d < -results[0][0]:
                    heapq.heappush(candidates, (d, neighbor))
                    heapq.heappush(results, (-d, neighbor))
                    if len(results) > ef:
                        heapq.heappop(results)

        return sorted((-d, n) for d, n in results)

    def _descend(self, query: np.ndarray, target_layer: int) -> List[int]:
        """Greedy descent from the top layer down to ``target_layer + 1``."""
        entry = [self._entry_point]
        for layer in range(self._max_level, target_layer, -1):
            entry = [self._search_layer(query, entry, 1, layer)[0][1]]
        return entry

    def _prune(self, node: int, layer: int) -> None:
        links = self._links[node][layer]
        if len(links) <= self.m:
            return
        distances = self._distances(self._vectors[node], links)
        keep = np.argsort(distances, kind="stable")[:self.m]
        self._links[node][layer] = [links[i] for i in keep]

    # Mutations

    def add(self, label: str, vector: VectorLike) -> None:
        """
        Insert a vector under ``label``.

        Raises:
            DimensionMismatchError: Before any graph mutation
            DuplicateIdError: If ``label`` already has an active node
        """
        prepared = self._prepare(vector)
        with self.lock.write_lock():
            if label in self._active:
                raise DuplicateIdError(label)
            self._insert_locked(label, prepared)

    def _insert_locked(self, label: str, vector: np.ndarray) -> None:
        level = self._random_level()
        node = self._allocate(label, vector, level)
        self._active[label] = node

        if self._entry_point is None:
            self._entry_point = node
            self._max_level = level
            return

        entry = self._descend(vector, level)
        for layer in range(min(level, self._max_level), -1, -1):
            candidates = self._search_layer(vector, entry, self.ef_construction, layer)
            live = [n for _, n in candidates if not self._deleted[n]]
            # an all-tombstone neighborhood still needs edges to stay reachable
            neighbors = (live or [n for _, n in candidates])[:self.m]

            self._links[node][layer] = list(neighbors)
            for neighbor in neighbors:
                self._links[neighbor][layer].append(node)
                self._prune(neighbor, layer)
            entry = [n for _, n in candidates]

        if level > self._max_level:
            self._entry_point = node
            self._max_level = level

    def mark_deleted(self, label: str) -> bool:
        """Tombstone the active node for ``label``. Idempotent; False if nothing changed."""
        with self.lock.write_lock():
            node = self._active.pop(label, None)
            if node is None:
                return False
            self._deleted[node] = True
            return True

    def update(self, label: str, vector: VectorLike) -> None:
        """
        Replace the vector for ``label`` with a fresh node.

        The previous node is tombstoned only once the new one is linked in, so
        a failed insert leaves the old version searchable.
        """
        prepared = self._prepare(vector)
        with self.lock.write_lock():
            previous = self._active.get(label)
            nodes_before = len(self._labels)
            try:
                self._insert_locked(label, prepared)
            except Exception:
                if len(self._labels) > nodes_before:
                    self._deleted[nodes_before] = True
                if previous is None:
                    self._active.pop(label, None)
                else:
                    self._active[label] = previous
                raise
            if previous is not None:
                self._deleted[previous] = True

    def clear(self) -> None:
        with self.lock.write_lock():
            self._vectors = np.zeros((INITIAL_CAPACITY, self.dimensions), dtype=np.float32)
            self._labels.clear()
            self._levels.clear()
            self._links.clear()
            self._deleted.clear()
            self._active.clear()
            self._entry_point = None
            self._max_level = -1

    # Search

    def search(self, query: VectorLike, k: int, ef: Optional[int] = None) -> List[Tuple[str, float]]:
        """
        Approximate top-k search.

        Args:
            query (VectorLike): Query vector
            k (int): Number of results
            ef (Optional[int]): Beam width, defaults to max(ef_search, k)

        Returns:
            List[Tuple[str, float]]: Up to k live (label, traversal distance) pairs, nearest first

        Raises:
            InvalidSearchOptionsError: If k <= 0 or ef < k
        """
        if k <= 0:
            raise InvalidSearchOptionsError(f"k must be positive, got {k}", {"top_k": k})
        if ef is None:
            ef = max(self.ef_search, k)
        elif ef < k:
            raise InvalidSearchOptionsError(f"ef ({ef}) must be >= top_k ({k})", {"ef": ef, "top_k": k})

        prepared = self._prepare(query)
        start_time = time.time()
        with self.lock.read_lock():
            if self._entry_point is None:
                return []
            entry = self._descend(prepared, 0)
            candidates = self._search_layer(prepared, entry, ef, 0)
            hits = [(self._labels[n], d) for d, n in candidates if not self._deleted[n]][:k]

        logger.debug(f"HNSW search k={k} ef={ef} returned {len(hits)} hits "
                     f"({(time.time() - start_time) * 1000:.2f}ms)")
        return hits

    # Introspection

    def contains(self, label: str) -> bool:
        return label in self._active

    def __contains__(self, label: str) -> bool:
        return self.contains(label)

    def __len__(self) -> int:
        return len(self._active)

    def labels(self) -> Iterator[str]:
        return iter(list(self._active))

    @property
    def node_count(self) -> int:
        return len(self._labels)

    @property
    def tombstone_count(self) -> int:
        return len(self._labels) - len(self._active)

    @property
    def tombstone_ratio(self) -> float:
        return self.tombstone_count / len(self._labels) if self._labels else 0.0

    @property
    def max_level(self) -> int:
        return self._max_level

    def get_node(self, label: str) -> Optional[IndexNode]:
        """The active node for ``label``, or None."""
        with self.lock.read_lock():
            node = self._active.get(label)
            if node is None:
                return None
            return IndexNode(
                id=label,
                level=self._levels[node],
                neighbors=tuple(tuple(self._labels[n] for n in layer) for layer in self._links[node]),
                deleted=self._deleted[node],
            )

    def iter_nodes(self) -> Iterator[IndexNode]:
        """Every node including tombstones, in insertion order."""
        with self.lock.read_lock():
            snapshot = [
                IndexNode(
                    id=self._labels[node],
                    level=self._levels[node],
                    neighbors=tuple(tuple(self._labels[n] for n in layer) for layer in self._links[node]),
                    deleted=self._deleted[node],
                )
                for node in range(len(self._labels))
            ]
        return iter(snapshot)

    def get_vector(self, label: str) -> Optional[np.ndarray]:
        """The vector held by the graph (unit-normalized for cosine)."""
        node = self._active.get(label)
        return None if node is None else self._vectors[node].copy()

    def get_statistics(self) -> Dict[str, Union[int, float, str]]:
        return {
            "metric": self.metric.value,
            "dimensions": self.dimensions,
            "m": self.m,
            "ef_construction": self.ef_construction,
            "ef_search": self.ef_search,
            "active_nodes": len(self._active),
            "total_nodes": self.node_count,
            "tombstones": self.tombstone_count,
            "tombstone_ratio": self.tombstone_ratio,
            "max_level": self._max_level,
        }
