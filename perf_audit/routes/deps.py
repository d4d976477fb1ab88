"""Shared route dependencies."""

from fastapi import HTTPException, Request, status

from perf_audit.services.build_store import BuildStore


def get_store(request: Request) -> BuildStore:
    """Store handle opened by the application lifespan."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Build store is not available",
        )
    return store
