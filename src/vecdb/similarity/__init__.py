"""
Similarity Package

Numeric building blocks shared by the index and the database:

- distance: Cosine, dot-product and Euclidean metrics
- quantizer: 8-bit scalar quantization with versioned ranges
- query_cache: LRU cache of search results keyed by query fingerprint
- exact_search: FAISS-backed brute-force search
"""

from .distance import Metric, batch_scores, cosine_similarity, distance, dot_product, euclidean_distance, similarity
from .exact_search import FlatSearcher
from .quantizer import QuantizedVector, ScalarQuantizer
from .query_cache import QueryCache

__all__ = [
    'Metric',
    'distance',
    'similarity',
    'cosine_similarity',
    'dot_product',
    'euclidean_distance',
    'batch_scores',
    'ScalarQuantizer',
    'QuantizedVector',
    'QueryCache',
    'FlatSearcher',
]
