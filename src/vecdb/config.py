"""
Database Configuration

Index parameters, quantization, caching and backend selection for one
VectorDatabase instance. Values can be given directly or read from
``VECDB_*`` environment variables.
"""

import math
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional, Union

from .exceptions import ConfigurationError
from .similarity.distance import Metric

BACKENDS = ("memory", "file", "mongo")

ENV_PREFIX = "VECDB_"


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"Invalid boolean value: {value!r}")


def _converter(field_type):
    if field_type in (bool, Optional[bool]):
        return _parse_bool
    if field_type in (int, Optional[int]):
        return int
    if field_type in (float, Optional[float]):
        return float
    return str


@dataclass
class VectorDBConfig:
    """
    Configuration for a VectorDatabase.

    ``dimensions``, ``metric`` and ``quantization`` are fixed once a store has
    been initialized; they are persisted with the store and checked on reopen.
    """

    dimensions: int
    metric: Union[str, Metric] = Metric.COSINE

    # HNSW graph
    m: int = 16
    ef_construction: int = 200
    ef_search: int = 64
    level_multiplier: Optional[float] = None
    seed: Optional[int] = None

    # Quantization
    quantization: bool = False
    retain_original_vectors: bool = True

    # Maintenance
    compaction_threshold: float = 0.2
    auto_compact: bool = True

    # Query cache
    cache_enabled: bool = True
    cache_size: int = 256

    # Backend selection
    backend: str = "memory"
    hybrid: bool = False
    hybrid_cache_capacity: Optional[int] = None

    # File backend
    file_path: str = "data/vector_store/vectors.log"
    fsync: bool = False

    # Snapshot export directory for the HTTP API
    snapshot_dir: str = "data/snapshots"

    # MongoDB backend
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "vecdb"
    mongo_collection: str = "vectors"
    max_batch_size: int = 500
    max_retries: int = 5
    retry_base_delay: float = 0.1
    retry_max_delay: float = 5.0
    max_concurrency: int = 4

    def __post_init__(self):
        self.metric = Metric.parse(self.metric)
        if self.level_multiplier is None and isinstance(self.m, int) and self.m > 1:
            self.level_multiplier = 1.0 / math.log(self.m)

    def validate(self) -> 'VectorDBConfig':
        """Check every value, raising ConfigurationError on the first bad one."""
        def positive_int(name):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}",
                                         {name: value})

        for name in ("dimensions", "ef_construction", "ef_search", "cache_size",
                     "max_batch_size", "max_retries", "max_concurrency"):
            positive_int(name)

        if isinstance(self.m, bool) or not isinstance(self.m, int) or self.m < 2:
            raise ConfigurationError(f"m must be an integer >= 2, got {self.m!r}", {"m": self.m})
        if self.level_multiplier is not None and self.level_multiplier <= 0:
            raise ConfigurationError("level_multiplier must be positive",
                                     {"level_multiplier": self.level_multiplier})
        if not 0.0 < self.compaction_threshold <= 1.0:
            raise ConfigurationError("compaction_threshold must be in (0, 1]",
                                     {"compaction_threshold": self.compaction_threshold})
        if self.backend not in BACKENDS:
            raise ConfigurationError(f"Unknown backend: {self.backend!r}",
                                     {"backend": self.backend, "supported": list(BACKENDS)})
        if self.hybrid and self.backend == "memory":
            raise ConfigurationError("hybrid mode requires a durable backend (file or mongo)")
        if self.hybrid_cache_capacity is not None and self.hybrid_cache_capacity <= 0:
            raise ConfigurationError("hybrid_cache_capacity must be positive",
                                     {"hybrid_cache_capacity": self.hybrid_cache_capacity})
        if not self.retain_original_vectors and not self.quantization:
            raise ConfigurationError("retain_original_vectors=False requires quantization")
        if self.retry_base_delay < 0 or self.retry_max_delay < self.retry_base_delay:
            raise ConfigurationError("retry delays must satisfy 0 <= base <= max",
                                     {"retry_base_delay": self.retry_base_delay,
                                      "retry_max_delay": self.retry_max_delay})
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> 'VectorDBConfig':
        """
        Build a configuration from ``VECDB_<FIELD>`` environment variables.

        Args:
            environ (Optional[Mapping[str, str]]): Variables to read, defaults to os.environ
            **overrides: Values taking precedence over the environment

        Returns:
            VectorDBConfig: Parsed configuration
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                values[f.name] = _converter(f.type)(raw)
            except ValueError:
                raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}")

        values.update(overrides)
        if "dimensions" not in values:
            raise ConfigurationError(f"{ENV_PREFIX}DIMENSIONS is required")
        return cls(**values)

    def persisted_fields(self) -> Dict[str, Any]:
        """Values that must not change for an existing store."""
        return {
            "dimensions": self.dimensions,
            "metric": self.metric.value,
            "quantization": self.quantization,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["metric"] = self.metric.value
        return data
