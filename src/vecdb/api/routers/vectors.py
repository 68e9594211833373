"""
Vectors Router

Create, read, update and delete vector records.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...engine.database import VectorDatabase
from ..dependencies import get_database
from ..models import AddVectorsRequest, AddVectorsResponse, UpdateVectorRequest, VectorResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/vectors", response_model=AddVectorsResponse, status_code=201)
def add_vectors(request: AddVectorsRequest, database: VectorDatabase = Depends(get_database)):
    """Add a batch of vectors with optional metadata and ids."""
    ids = database.add_vectors(request.vectors, metadata=request.metadata, ids=request.ids)
    return AddVectorsResponse(ids=ids, count=len(ids))


@router.get("/vectors/{record_id}", response_model=VectorResponse)
def get_vector(record_id: str, database: VectorDatabase = Depends(get_database)):
    """Get a stored vector and its metadata."""
    record = database.get_record(record_id)
    return VectorResponse(
        id=record.id,
        vector=database.get_vector(record_id).tolist(),
        metadata=record.metadata,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.put("/vectors/{record_id}")
def update_vector(record_id: str, request: UpdateVectorRequest,
                  database: VectorDatabase = Depends(get_database)) -> Dict[str, Any]:
    """Replace a vector and/or its metadata."""
    database.update_vector(record_id, vector=request.vector, metadata=request.metadata)
    return {"id": record_id, "updated": True}


@router.delete("/vectors/{record_id}")
def delete_vector(record_id: str, database: VectorDatabase = Depends(get_database)) -> Dict[str, Any]:
    """Delete a vector. Deleting an unknown id succeeds with deleted=false."""
    deleted = database.delete_vector(record_id)
    return {"id": record_id, "deleted": deleted}
