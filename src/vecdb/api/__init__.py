"""
Vector Search API Package

FastAPI application exposing a VectorDatabase over HTTP:

- POST /api/v1/vectors, GET|PUT|DELETE /api/v1/vectors/{id}
- POST /api/v1/search
- POST /api/v1/index/rebuild, POST /api/v1/index/compact
- POST /api/v1/snapshot/export, GET /api/v1/stats
- GET /health
"""

from .main import create_app

__all__ = ['create_app']
