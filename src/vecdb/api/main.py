"""
Vector Search API Main Application

FastAPI application exposing one VectorDatabase over HTTP.
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import VectorDBConfig
from ..engine.database import VectorDatabase
from ..exceptions import (BackendUnavailableError, ConfigurationError, DimensionMismatchError,
                          DuplicateIdError, InvalidSearchOptionsError, NotFoundError, PartialWriteError,
                          SnapshotFormatError, VectorDBError)
from .routers import management, search, vectors

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

ERROR_STATUS_CODES = {
    DimensionMismatchError: 400,
    InvalidSearchOptionsError: 400,
    ConfigurationError: 400,
    SnapshotFormatError: 400,
    NotFoundError: 404,
    DuplicateIdError: 409,
    PartialWriteError: 500,
    BackendUnavailableError: 503,
}


def status_code_for(error: VectorDBError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def configure_logging() -> None:
    """Configure root logging from VECDB_LOG_LEVEL (default INFO)."""
    level = os.getenv("VECDB_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def create_app(database: VectorDatabase, close_on_shutdown: bool = False) -> FastAPI:
    """
    Build the FastAPI application around an existing database.

    Args:
        database (VectorDatabase): Database served by every route
        close_on_shutdown (bool): Close the database when the app shuts down

    Returns:
        FastAPI: Configured application
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting vector search API server...")
        app.state.start_time = time.time()
        try:
            yield
        finally:
            logger.info("Shutting down vector search API server...")
            if close_on_shutdown:
                database.close()

    app = FastAPI(
        title="Vector Search API",
        description="Approximate nearest neighbor search over embedding vectors with metadata filtering",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(vectors.router, prefix="/api/v1", tags=["vectors"])
    app.include_router(search.router, prefix="/api/v1", tags=["search"])
    app.include_router(management.router, prefix="/api/v1", tags=["management"])

    @app.get("/health")
    def health_check():
        """Backend reachability and store/index agreement."""
        health = database.health_check()
        health["uptime_seconds"] = time.time() - app.state.start_time
        health["version"] = API_VERSION
        status_code = 200 if health["status"] == "healthy" else 503
        return JSONResponse(status_code=status_code, content=health)

    @app.exception_handler(VectorDBError)
    async def vector_db_error_handler(request: Request, exc: VectorDBError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"error": "InvalidInput", "message": str(exc), "details": {}, "retryable": False},
        )

    logger.info(f"API created for {database.store.backend_name} database "
                f"({database.dimensions} dimensions) at {datetime.now(timezone.utc).isoformat()}")
    return app


def main() -> None:
    configure_logging()
    config = VectorDBConfig.from_env()
    database = VectorDatabase(config)
    app = create_app(database, close_on_shutdown=True)

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run(app, host=host, port=port, log_level=os.getenv("VECDB_LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
