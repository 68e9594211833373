"""
Engine Package

The VectorDatabase orchestrator composing store, index, quantizer and cache.
"""

from .database import VectorDatabase

__all__ = ['VectorDatabase']
