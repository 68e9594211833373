"""
Tests for Configuration

Tests defaults, validation and loading from VECDB_* environment variables.
"""

import math

import pytest

from vecdb.config import VectorDBConfig
from vecdb.exceptions import ConfigurationError
from vecdb.similarity.distance import Metric


class TestVectorDBConfig:
    """Test configuration values and validation."""

    def test_defaults(self):
        config = VectorDBConfig(dimensions=128).validate()
        assert config.metric is Metric.COSINE
        assert config.m == 16
        assert config.level_multiplier == pytest.approx(1 / math.log(16))
        assert config.backend == "memory"
        assert not config.quantization

    def test_metric_names(self):
        assert VectorDBConfig(dimensions=2, metric="dotProduct").metric is Metric.DOT_PRODUCT
        with pytest.raises(ConfigurationError):
            VectorDBConfig(dimensions=2, metric="hamming")

    @pytest.mark.parametrize("overrides", [
        {"dimensions": 0},
        {"dimensions": 2.5},
        {"m": 1},
        {"ef_search": 0},
        {"compaction_threshold": 0.0},
        {"compaction_threshold": 1.5},
        {"backend": "redis"},
        {"hybrid": True},
        {"retain_original_vectors": False},
        {"retry_base_delay": 2.0, "retry_max_delay": 1.0},
        {"hybrid_cache_capacity": 0, "backend": "file", "hybrid": True},
    ])
    def test_invalid_values(self, overrides):
        options = {"dimensions": 4}
        options.update(overrides)
        with pytest.raises(ConfigurationError):
            VectorDBConfig(**options).validate()

    def test_valid_combinations(self):
        VectorDBConfig(dimensions=4, quantization=True, retain_original_vectors=False).validate()
        VectorDBConfig(dimensions=4, backend="file", hybrid=True, hybrid_cache_capacity=10).validate()
        VectorDBConfig(dimensions=4, compaction_threshold=1.0).validate()

    def test_persisted_fields(self):
        config = VectorDBConfig(dimensions=8, metric="euclidean", quantization=True)
        assert config.persisted_fields() == {"dimensions": 8, "metric": "euclidean", "quantization": True}
        assert config.to_dict()["metric"] == "euclidean"


class TestConfigFromEnv:
    """Test environment variable loading."""

    def test_typed_values(self):
        config = VectorDBConfig.from_env({
            "VECDB_DIMENSIONS": "384",
            "VECDB_METRIC": "euclidean",
            "VECDB_QUANTIZATION": "true",
            "VECDB_CACHE_ENABLED": "no",
            "VECDB_COMPACTION_THRESHOLD": "0.3",
            "VECDB_SEED": "7",
            "VECDB_BACKEND": "file",
            "VECDB_FILE_PATH": "/tmp/vectors.log",
        })
        assert config.dimensions == 384
        assert config.metric is Metric.EUCLIDEAN
        assert config.quantization is True
        assert config.cache_enabled is False
        assert config.compaction_threshold == pytest.approx(0.3)
        assert config.seed == 7
        assert config.file_path == "/tmp/vectors.log"

    def test_overrides_win(self):
        config = VectorDBConfig.from_env({"VECDB_DIMENSIONS": "384"}, dimensions=16, m=8)
        assert config.dimensions == 16
        assert config.m == 8

    def test_unrelated_variables_ignored(self):
        config = VectorDBConfig.from_env({"VECDB_DIMENSIONS": "4", "PATH": "/usr/bin"})
        assert config.dimensions == 4

    def test_dimensions_required(self):
        with pytest.raises(ConfigurationError):
            VectorDBConfig.from_env({})

    @pytest.mark.parametrize("name, value", [
        ("VECDB_M", "sixteen"),
        ("VECDB_FSYNC", "maybe"),
        ("VECDB_RETRY_BASE_DELAY", "fast"),
    ])
    def test_malformed_values(self, name, value):
        with pytest.raises(ConfigurationError):
            VectorDBConfig.from_env({"VECDB_DIMENSIONS": "4", name: value})
