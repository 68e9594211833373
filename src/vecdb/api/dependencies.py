"""
FastAPI Dependencies

The database is created by the caller and attached to the app by
``create_app``; routes receive it through dependency injection.
"""

from fastapi import Request

from ..engine.database import VectorDatabase


def get_database(request: Request) -> VectorDatabase:
    """Get the database instance bound to this application."""
    return request.app.state.database
