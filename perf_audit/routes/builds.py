"""Build history routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from perf_audit.routes.deps import get_store
from perf_audit.schemas.build import BuildRecord
from perf_audit.services.build_store import BuildStore

router = APIRouter(prefix="/api/builds", tags=["builds"])


@router.get("", response_model=list[BuildRecord])
async def list_builds(
    store: Annotated[BuildStore, Depends(get_store)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
):
    """Most recent builds, newest first."""
    return await store.get_recent_builds(limit)


@router.get("/{build_id}", response_model=BuildRecord)
async def get_build(
    build_id: int,
    store: Annotated[BuildStore, Depends(get_store)],
):
    build = await store.get_build(build_id)
    if build is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Build not found")
    return build
