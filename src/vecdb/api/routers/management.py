"""
Management Router

Index maintenance, snapshots and statistics.
"""

import logging
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from ...engine.database import VectorDatabase
from ..dependencies import get_database
from ..models import SnapshotRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/index/rebuild")
def rebuild_index(database: VectorDatabase = Depends(get_database)) -> Dict[str, Any]:
    """Rebuild the graph index from the store. Writes wait until it finishes."""
    logger.info("Index rebuild requested")
    return database.rebuild_index()


@router.post("/index/compact")
def compact_index(force: bool = Query(False, description="Compact even below the tombstone threshold"),
                  database: VectorDatabase = Depends(get_database)) -> Dict[str, Any]:
    """Drop tombstones when the threshold is exceeded (or always, with force)."""
    return database.compact(force=force)


def resolve_snapshot_path(directory: str, name: str) -> Path:
    """Resolve a bare file name inside the snapshot directory."""
    base = Path(directory).resolve()
    target = (base / name).resolve()
    if Path(name).name != name or target.parent != base:
        logger.warning(f"Rejected snapshot name {name!r} outside {base}")
        raise ValueError(f"Snapshot name must be a plain file name, got {name!r}")
    return target


@router.post("/snapshot/export")
def export_snapshot(request: SnapshotRequest,
                    database: VectorDatabase = Depends(get_database)) -> Dict[str, Any]:
    """Write all records to a snapshot file in the configured snapshot directory."""
    path = resolve_snapshot_path(database.config.snapshot_dir, request.name)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = database.export_snapshot(path)
    return {"name": request.name, "path": str(path), "records": count}


@router.get("/stats")
def get_stats(database: VectorDatabase = Depends(get_database)) -> Dict[str, Any]:
    """Database, index, cache and store statistics."""
    return database.get_statistics()
