"""
Search Router

Similarity search endpoints.
"""

import logging
import time

from fastapi import APIRouter, Depends, Query

from ...engine.database import VectorDatabase
from ...vector_store.schema import SearchResult
from ..dependencies import get_database
from ..models import SearchHitModel, SearchRequest, SearchResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_response(result: SearchResult, start_time: float) -> SearchResponse:
    return SearchResponse(
        results=[SearchHitModel(id=hit.id, score=hit.score, metadata=hit.metadata) for hit in result],
        metric=result.metric.value,
        cached=result.cached,
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@router.post("/search", response_model=SearchResponse)
def search_vectors(request: SearchRequest, database: VectorDatabase = Depends(get_database)):
    """
    Top-k similarity search.

    Metadata filters are applied after ranking, so fewer than top_k results
    may be returned.
    """
    start_time = time.time()
    result = database.search(request.vector, request.search_options())
    return _to_response(result, start_time)


@router.get("/vectors/{record_id}/similar", response_model=SearchResponse)
def find_similar(record_id: str,
                 top_k: int = Query(10, ge=1, le=1000, description="Number of results"),
                 database: VectorDatabase = Depends(get_database)):
    """Records most similar to an existing one, excluding itself."""
    start_time = time.time()
    return _to_response(database.find_similar(record_id, top_k=top_k), start_time)
