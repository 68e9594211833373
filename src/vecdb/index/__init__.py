"""
Index Package

Approximate nearest neighbor graph and the locking it relies on.
"""

from .hnsw import HNSWIndex, IndexNode
from .locks import RWLock

__all__ = ['HNSWIndex', 'IndexNode', 'RWLock']
