"""
Distance Module

Pure, stateless similarity and distance functions over fixed-length float
vectors. Three metrics are supported:

- cosine: dot(a, b) / (|a| |b|), higher is better
- dotProduct: dot(a, b), higher is better
- euclidean: |a - b|, lower is better

Euclidean distance is also exposed as the similarity-compatible transform
1 / (1 + distance) so every metric can be ranked with a single
"higher is better" comparator internally.
"""

from enum import Enum
from typing import Sequence, Union

import numpy as np

from ..exceptions import ConfigurationError, DimensionMismatchError

VectorLike = Union[Sequence[float], np.ndarray]


class Metric(str, Enum):
    """Similarity metric enumeration."""
    COSINE = "cosine"
    DOT_PRODUCT = "dotProduct"
    EUCLIDEAN = "euclidean"

    @classmethod
    def parse(cls, value: Union[str, "Metric"]) -> "Metric":
        """
        Resolve a metric from its name or a common alias.

        Args:
            value (Union[str, Metric]): Metric or metric name

        Returns:
            Metric: Parsed metric
        """
        if isinstance(value, Metric):
            return value
        key = str(value).strip()
        aliases = {
            "cosine": cls.COSINE,
            "dotproduct": cls.DOT_PRODUCT,
            "dot_product": cls.DOT_PRODUCT,
            "dot": cls.DOT_PRODUCT,
            "euclidean": cls.EUCLIDEAN,
            "l2": cls.EUCLIDEAN,
        }
        try:
            return aliases[key.lower()]
        except KeyError:
            raise ConfigurationError(f"Unknown similarity metric: {value!r}",
                                     {"supported": [m.value for m in cls]})

    @property
    def higher_is_better(self) -> bool:
        return self is not Metric.EUCLIDEAN


def as_vector(values: VectorLike) -> np.ndarray:
    """Convert a vector-like value to a 1D float32 array."""
    array = np.asarray(values, dtype=np.float32)
    if array.ndim != 1:
        array = array.reshape(-1)
    return array


def _check_dimensions(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(expected=a.shape[0], actual=b.shape[0])


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 (not NaN) when either vector has zero magnitude.
    """
    a, b = as_vector(a), as_vector(b)
    _check_dimensions(a, b)
    norm_product = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm_product == 0.0:
        return 0.0
    return float(np.dot(a, b)) / norm_product


def dot_product(a: VectorLike, b: VectorLike) -> float:
    """Raw dot product between two vectors."""
    a, b = as_vector(a), as_vector(b)
    _check_dimensions(a, b)
    return float(np.dot(a, b))


def euclidean_distance(a: VectorLike, b: VectorLike) -> float:
    """Euclidean (L2) distance between two vectors."""
    a, b = as_vector(a), as_vector(b)
    _check_dimensions(a, b)
    return float(np.linalg.norm(a - b))


def euclidean_similarity(a: VectorLike, b: VectorLike) -> float:
    """Euclidean distance mapped to (0, 1] as 1 / (1 + distance)."""
    return distance_to_similarity(euclidean_distance(a, b))


def distance_to_similarity(distance_value: float) -> float:
    return 1.0 / (1.0 + distance_value)


def distance(a: VectorLike, b: VectorLike, metric: Union[str, Metric]) -> float:
    """
    Native score of a metric: similarity for cosine and dotProduct,
    raw distance for euclidean.

    Args:
        a (VectorLike): First vector
        b (VectorLike): Second vector
        metric (Union[str, Metric]): Metric to apply

    Returns:
        float: Metric score

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    metric = Metric.parse(metric)
    if metric is Metric.COSINE:
        return cosine_similarity(a, b)
    if metric is Metric.DOT_PRODUCT:
        return dot_product(a, b)
    return euclidean_distance(a, b)


def similarity(a: VectorLike, b: VectorLike, metric: Union[str, Metric]) -> float:
    """Higher-is-better score for any metric."""
    metric = Metric.parse(metric)
    if metric is Metric.EUCLIDEAN:
        return euclidean_similarity(a, b)
    return distance(a, b, metric)


def batch_scores(query: VectorLike, matrix: np.ndarray, metric: Union[str, Metric]) -> np.ndarray:
    """
    Native metric scores of one query against every row of a matrix.

    Args:
        query (VectorLike): Query vector
        matrix (np.ndarray): Candidate vectors (n_vectors, dimensions)
        metric (Union[str, Metric]): Metric to apply

    Returns:
        np.ndarray: Scores, one per row (float64)
    """
    metric = Metric.parse(metric)
    q = as_vector(query).astype(np.float64)
    m = np.asarray(matrix, dtype=np.float64)
    if m.size == 0:
        return np.zeros(0, dtype=np.float64)
    if m.ndim != 2 or m.shape[1] != q.shape[0]:
        raise DimensionMismatchError(expected=q.shape[0], actual=m.shape[-1])

    if metric is Metric.DOT_PRODUCT:
        return m @ q
    if metric is Metric.EUCLIDEAN:
        return np.linalg.norm(m - q, axis=1)

    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    scores = np.zeros_like(dots)
    nonzero = norms > 0
    scores[nonzero] = dots[nonzero] / norms[nonzero]
    return scores


def ranking_key(score: float, metric: Metric) -> float:
    """Map a native score to a value where larger always ranks first."""
    return score if metric.higher_is_better else -score


def passes_threshold(score: float, threshold, metric: Metric) -> bool:
    """Threshold is a minimum similarity, or a maximum euclidean distance."""
    if threshold is None:
        return True
    if metric.higher_is_better:
        return score >= threshold
    return score <= threshold
