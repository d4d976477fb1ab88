"""Trend and comparison routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from perf_audit.routes.deps import get_store
from perf_audit.schemas.build import BuildComparison, TrendPoint
from perf_audit.services.build_store import BuildStore

router = APIRouter(prefix="/api", tags=["trends"])


@router.get("/trends", response_model=list[TrendPoint])
async def get_trends(
    store: Annotated[BuildStore, Depends(get_store)],
    days: Annotated[int, Query(ge=1, le=3650)] = 30,
):
    """Per-day aggregates over the trailing window, newest date first."""
    return await store.get_trend_data(days)


@router.get("/compare/{old_id}/{new_id}", response_model=BuildComparison)
async def compare_builds(
    old_id: int,
    new_id: int,
    store: Annotated[BuildStore, Depends(get_store)],
):
    """Diff two builds; 404 when either build does not exist."""
    comparison = await store.get_build_comparison(old_id, new_id)
    if comparison.old_build is None or comparison.new_build is None:
        missing = old_id if comparison.old_build is None else new_id
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Build {missing} not found"
        )
    return comparison
