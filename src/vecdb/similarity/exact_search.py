"""
Exact Flat Search

Brute-force nearest neighbor search backed by FAISS flat indexes. Serves
queries that bypass the graph (exact mode, or a metric other than the one the
graph was built with) and provides the ground truth for recall evaluation.
"""

import logging
import time
from typing import List, Sequence, Tuple, Union

import faiss
import numpy as np

from ..exceptions import DimensionMismatchError
from .distance import Metric, VectorLike, as_vector, batch_scores, ranking_key

logger = logging.getLogger(__name__)


class FlatSearcher:
    """
    Exact top-k search over a fixed set of vectors.

    Scores are returned in each metric's native form: similarity for cosine
    and dotProduct, raw distance for euclidean.
    """

    def __init__(self, dimensions: int, metric: Union[str, Metric] = Metric.COSINE):
        self.dimensions = dimensions
        self.metric = Metric.parse(metric)
        self.index = self._create_index()
        self.ids: List[str] = []
        self._vectors: List[np.ndarray] = []

    def _create_index(self) -> faiss.Index:
        if self.metric is Metric.EUCLIDEAN:
            return faiss.IndexFlatL2(self.dimensions)
        # Inner product; cosine inputs are L2-normalized first
        return faiss.IndexFlatIP(self.dimensions)

    def _prepare(self, vectors: np.ndarray) -> np.ndarray:
        vectors = np.ascontiguousarray(vectors, dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[1] != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=vectors.shape[-1])
        if self.metric is Metric.COSINE:
            vectors = vectors.copy()
            faiss.normalize_L2(vectors)
        return vectors

    def add(self, ids: Sequence[str], vectors: np.ndarray) -> None:
        """Add vectors (n_vectors, dimensions) under the given ids."""
        if len(ids) != len(vectors):
            raise ValueError("Number of vectors must match number of ids")
        if len(ids) == 0:
            return
        raw = np.asarray(vectors, dtype=np.float32)
        self.index.add(self._prepare(raw))
        self.ids.extend(ids)
        self._vectors.extend(raw)

    def __len__(self) -> int:
        return self.index.ntotal

    def search(self, query: VectorLike, k: int) -> List[Tuple[str, float]]:
        """
        Exact top-k for one query.

        Returns:
            List[Tuple[str, float]]: (id, native score) pairs, best first, ties by id
        """
        return self.batch_search(as_vector(query).reshape(1, -1), k)[0]

    def batch_search(self, queries: np.ndarray, k: int) -> List[List[Tuple[str, float]]]:
        """Exact top-k for several queries (n_queries, dimensions)."""
        queries = np.asarray(queries, dtype=np.float32)
        if self.index.ntotal == 0:
            return [[] for _ in range(len(queries))]

        start_time = time.time()
        k = min(k, self.index.ntotal)
        prepared = self._prepare(queries)
        # one extra row shows whether the k-th score is tied beyond the cut
        fetch = min(k + 1, self.index.ntotal)
        distances, indices = self.index.search(prepared, fetch)

        results = []
        for query, row_query, row_distances, row in zip(queries, prepared, distances, indices):
            size = fetch
            while size < self.index.ntotal and np.isclose(row_distances[size - 1], row_distances[k - 1],
                                                          rtol=1e-6, atol=1e-6):
                size = min(size * 2, self.index.ntotal)
                found = self.index.search(row_query.reshape(1, -1), size)
                row_distances, row = found[0][0], found[1][0]
            results.append(self._rank(query, [int(i) for i in row if i >= 0])[:k])

        logger.debug(f"Exact search over {self.index.ntotal} vectors for {len(queries)} queries "
                     f"({(time.time() - start_time) * 1000:.1f}ms)")
        return results

    def _rank(self, query: np.ndarray, positions: List[int]) -> List[Tuple[str, float]]:
        """Exact re-score of candidate rows, best first, ties by id."""
        matrix = np.stack([self._vectors[i] for i in positions])
        scores = batch_scores(query, matrix, self.metric)
        return sorted(
            ((self.ids[p], float(s)) for p, s in zip(positions, scores)),
            key=lambda hit: (-ranking_key(hit[1], self.metric), hit[0]))
