"""
Test Suite for the vecdb Vector Search Engine

Tests for all components including:
- Similarity functions, quantization and the query cache
- HNSW graph construction, tombstones and search
- Storage backends (memory, file log, MongoDB, hybrid) and snapshots
- The VectorDatabase orchestrator and its consistency guarantees
- Configuration loading and the REST API
"""

__version__ = "1.0.0"
