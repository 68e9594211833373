"""
Pydantic Models for the Vector Search API

Defines request and response models for all API endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Request Models
class AddVectorsRequest(BaseModel):
    """Request model for adding vectors."""
    vectors: List[List[float]] = Field(..., min_length=1, description="Vectors to add")
    metadata: Optional[List[Optional[Dict[str, Any]]]] = Field(None, description="Per-vector metadata")
    ids: Optional[List[str]] = Field(None, description="Caller-assigned ids; generated when omitted")

    @field_validator('ids')
    @classmethod
    def validate_ids(cls, v):
        """Ids must be non-empty strings."""
        if v is not None and any(not i.strip() for i in v):
            raise ValueError('Ids cannot be empty or only whitespace')
        return v


class UpdateVectorRequest(BaseModel):
    """Request model for updating a vector and/or its metadata."""
    vector: Optional[List[float]] = Field(None, description="Replacement vector")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Replacement metadata")


class SearchRequest(BaseModel):
    """Request model for similarity search."""
    model_config = ConfigDict(populate_by_name=True)

    vector: List[float] = Field(..., min_length=1, description="Query vector")
    top_k: int = Field(10, alias="topK", description="Number of results to return")
    algorithm: Optional[str] = Field(None, description="cosine, dotProduct or euclidean")
    threshold: Optional[float] = Field(None, description="Minimum similarity or maximum distance")
    filters: Optional[Dict[str, Any]] = Field(None, description="Metadata filter document")
    include_metadata: bool = Field(True, alias="includeMetadata", description="Include metadata in results")
    use_cache: bool = Field(True, alias="useCache", description="Allow cached results")
    ef: Optional[int] = Field(None, description="Beam width, must be >= top_k")
    exact: bool = Field(False, description="Force brute-force search")

    def search_options(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"vector"})


class SnapshotRequest(BaseModel):
    """Request model for snapshot export."""
    name: str = Field(..., min_length=1, description="Snapshot file name inside the snapshot directory")


# Response Models
class AddVectorsResponse(BaseModel):
    """Response model for vector insertion."""
    ids: List[str] = Field(..., description="Ids of the added vectors")
    count: int = Field(..., ge=0, description="Number of vectors added")


class VectorResponse(BaseModel):
    """Response model for a stored vector record."""
    id: str
    vector: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SearchHitModel(BaseModel):
    """One ranked search result."""
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None


class SearchResponse(BaseModel):
    """Response model for similarity search."""
    results: List[SearchHitModel] = Field(..., description="Ranked results")
    metric: str = Field(..., description="Metric used for scoring")
    cached: bool = Field(False, description="Whether the result came from the query cache")
    processing_time_ms: float = Field(..., description="Search processing time")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error kind")
    message: str = Field(..., description="Error message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional error details")
    retryable: bool = Field(False, description="Whether retrying may succeed")
