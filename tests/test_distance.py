"""
Tests for Similarity Components

Tests distance metrics, the scalar quantizer, the query cache and the
FAISS-backed exact searcher.
"""

import math

import numpy as np
import pytest

from vecdb.exceptions import ConfigurationError, DimensionMismatchError
from vecdb.similarity.distance import (Metric, batch_scores, cosine_similarity, distance, distance_to_similarity,
                                       dot_product, euclidean_distance, passes_threshold, ranking_key, similarity)
from vecdb.similarity.exact_search import FlatSearcher
from vecdb.similarity.quantizer import LEVELS, QuantizedVector, ScalarQuantizer
from vecdb.similarity.query_cache import QueryCache


class TestMetric:
    """Test metric name parsing."""

    def test_wire_names(self):
        assert Metric.parse("cosine") is Metric.COSINE
        assert Metric.parse("dotProduct") is Metric.DOT_PRODUCT
        assert Metric.parse("euclidean") is Metric.EUCLIDEAN

    def test_aliases(self):
        assert Metric.parse("dot") is Metric.DOT_PRODUCT
        assert Metric.parse("dot_product") is Metric.DOT_PRODUCT
        assert Metric.parse("l2") is Metric.EUCLIDEAN
        assert Metric.parse(Metric.COSINE) is Metric.COSINE

    def test_unknown_metric(self):
        with pytest.raises(ConfigurationError):
            Metric.parse("manhattan")

    def test_direction(self):
        assert Metric.COSINE.higher_is_better
        assert Metric.DOT_PRODUCT.higher_is_better
        assert not Metric.EUCLIDEAN.higher_is_better


class TestDistanceFunctions:
    """Test pure distance functions."""

    def test_cosine_similarity(self):
        assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
        assert cosine_similarity([1, 1], [2, 2]) == pytest.approx(1.0)

    def test_cosine_zero_vector_is_zero_not_nan(self):
        score = cosine_similarity([0, 0, 0], [1, 2, 3])
        assert score == 0.0
        assert not math.isnan(score)

    def test_dot_product(self):
        assert dot_product([1, 2, 3], [4, 5, 6]) == pytest.approx(32.0)

    def test_euclidean_distance_and_similarity(self):
        assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)
        assert distance_to_similarity(5.0) == pytest.approx(1 / 6)
        assert similarity([0, 0], [3, 4], "euclidean") == pytest.approx(1 / 6)

    def test_distance_dispatch(self):
        assert distance([1, 0], [1, 1], "cosine") == pytest.approx(1 / math.sqrt(2))
        assert distance([1, 0], [1, 1], "dotProduct") == pytest.approx(1.0)
        assert distance([1, 0], [1, 1], "euclidean") == pytest.approx(1.0)

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            distance([1, 2, 3], [1, 2], "cosine")
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_batch_scores_match_pairwise(self):
        rng = np.random.default_rng(7)
        matrix = rng.normal(size=(20, 8)).astype(np.float32)
        query = rng.normal(size=8).astype(np.float32)
        matrix[3] = 0.0

        for metric in Metric:
            scores = batch_scores(query, matrix, metric)
            expected = [distance(query, row, metric) for row in matrix]
            assert np.allclose(scores, expected, atol=1e-5)
        assert batch_scores(query, matrix, "cosine")[3] == 0.0

    def test_ranking_and_threshold(self):
        assert ranking_key(0.9, Metric.COSINE) > ranking_key(0.1, Metric.COSINE)
        assert ranking_key(0.1, Metric.EUCLIDEAN) > ranking_key(0.9, Metric.EUCLIDEAN)
        assert passes_threshold(0.8, 0.5, Metric.COSINE)
        assert not passes_threshold(0.4, 0.5, Metric.COSINE)
        assert passes_threshold(0.4, 0.5, Metric.EUCLIDEAN)
        assert not passes_threshold(0.8, 0.5, Metric.EUCLIDEAN)
        assert passes_threshold(-3.0, None, Metric.DOT_PRODUCT)


class TestScalarQuantizer:
    """Test scalar quantization."""

    def setup_method(self):
        self.rng = np.random.default_rng(42)
        self.vectors = self.rng.uniform(-1.0, 1.0, size=(200, 16)).astype(np.float32)
        self.quantizer = ScalarQuantizer(16)
        self.quantizer.fit(self.vectors)

    def test_round_trip_error_is_bounded(self):
        bound = self.quantizer.max_error() + 1e-6
        for vector in self.vectors[:50]:
            q = self.quantizer.quantize(vector)
            assert q.codes.dtype == np.uint8
            restored = self.quantizer.dequantize(q)
            assert np.all(np.abs(restored - vector) <= bound)

    def test_range_widens_with_new_version(self):
        version = self.quantizer.version
        q_old = self.quantizer.quantize(self.vectors[0])
        outlier = np.full(16, 5.0, dtype=np.float32)
        q_new = self.quantizer.quantize(outlier)

        assert self.quantizer.version == version + 1
        assert q_new.version == version + 1
        # codes made under the old range still decode with the old range
        restored = self.quantizer.dequantize(q_old)
        assert np.all(np.abs(restored - self.vectors[0]) <= self.quantizer.max_error(q_old.version) + 1e-6)
        assert np.allclose(self.quantizer.dequantize(q_new), outlier, atol=float(self.quantizer.max_error().max()) + 1e-5)

    def test_constant_component(self):
        quantizer = ScalarQuantizer(2)
        q = quantizer.quantize([3.0, 3.0])
        assert np.allclose(quantizer.dequantize(q), [3.0, 3.0])

    def test_codes_span_full_range(self):
        quantizer = ScalarQuantizer(1)
        quantizer.fit(np.array([[0.0], [1.0]], dtype=np.float32))
        assert quantizer.quantize([0.0]).codes[0] == 0
        assert quantizer.quantize([1.0]).codes[0] == LEVELS

    def test_state_round_trip(self):
        restored = ScalarQuantizer.from_dict(self.quantizer.to_dict())
        q = self.quantizer.quantize(self.vectors[5])
        assert np.allclose(restored.dequantize(q), self.quantizer.dequantize(q))

    def test_quantized_vector_serialization(self):
        q = self.quantizer.quantize(self.vectors[1])
        assert QuantizedVector.from_dict(q.to_dict()) == q
        assert q.nbytes == 16

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            self.quantizer.quantize([1.0, 2.0])


class TestQueryCache:
    """Test the LRU query cache."""

    def setup_method(self):
        self.cache = QueryCache(max_entries=2)

    def test_fingerprint_is_deterministic(self):
        vector = np.array([0.1, 0.2], dtype=np.float32)
        a = QueryCache.fingerprint(vector, top_k=5, filters={"b": 1, "a": 2})
        b = QueryCache.fingerprint(vector.copy(), top_k=5, filters={"a": 2, "b": 1})
        assert a == b
        assert a != QueryCache.fingerprint(vector, top_k=6, filters={"a": 2, "b": 1})
        assert a != QueryCache.fingerprint(np.array([0.1, 0.3]), top_k=5, filters={"a": 2, "b": 1})

    def test_hit_and_miss(self):
        assert self.cache.get("k1") is None
        self.cache.put("k1", "result")
        assert self.cache.get("k1") == "result"
        stats = self.cache.get_statistics()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_lru_eviction(self):
        self.cache.put("a", 1)
        self.cache.put("b", 2)
        self.cache.get("a")
        self.cache.put("c", 3)

        assert "a" in self.cache
        assert "b" not in self.cache
        assert "c" in self.cache
        assert self.cache.evictions == 1

    def test_invalidate(self):
        self.cache.put("a", 1)
        self.cache.invalidate()
        assert len(self.cache) == 0
        assert self.cache.get("a") is None

    def test_disabled_cache(self):
        cache = QueryCache(max_entries=4, enabled=False)
        cache.put("a", 1)
        assert cache.get("a") is None
        assert len(cache) == 0


class TestFlatSearcher:
    """Test exact FAISS-backed search."""

    def setup_method(self):
        rng = np.random.default_rng(3)
        self.vectors = rng.normal(size=(50, 8)).astype(np.float32)
        self.ids = [f"vec_{i:02d}" for i in range(50)]
        self.query = rng.normal(size=8).astype(np.float32)

    def test_matches_brute_force(self):
        for metric in Metric:
            searcher = FlatSearcher(8, metric)
            searcher.add(self.ids, self.vectors)
            hits = searcher.search(self.query, 5)

            scores = [distance(self.query, v, metric) for v in self.vectors]
            order = sorted(range(50), key=lambda i: (-ranking_key(scores[i], metric), self.ids[i]))
            assert [h[0] for h in hits] == [self.ids[i] for i in order[:5]]
            assert np.allclose([h[1] for h in hits], [scores[i] for i in order[:5]], atol=1e-5)

    def test_k_larger_than_index(self):
        searcher = FlatSearcher(8, "euclidean")
        searcher.add(self.ids[:3], self.vectors[:3])
        assert len(searcher.search(self.query, 10)) == 3

    def test_empty(self):
        searcher = FlatSearcher(8)
        assert searcher.search(self.query, 3) == []

    def test_ties_at_cutoff_break_by_id(self):
        searcher = FlatSearcher(2, "cosine")
        searcher.add(["e", "d", "c", "b", "a"], np.tile([1.0, 0.0], (5, 1)))
        assert [h[0] for h in searcher.search([1, 0], 2)] == ["a", "b"]

        ring = FlatSearcher(2, "euclidean")
        ring.add(["z", "y", "x", "w"], np.array([[0, -1], [-1, 0], [0, 1], [1, 0]], dtype=np.float32))
        assert [h[0] for h in ring.search([0, 0], 1)] == ["w"]

    def test_zero_query_ties_break_by_id(self):
        searcher = FlatSearcher(2, "cosine")
        searcher.add(["d", "c", "b", "a"], np.array([[1, 0], [0, 1], [1, 1], [-1, 2]], dtype=np.float32))
        hits = searcher.search([0, 0], 2)
        assert [h[0] for h in hits] == ["a", "b"]
        assert [h[1] for h in hits] == [0.0, 0.0]
