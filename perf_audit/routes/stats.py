"""Aggregate statistics route."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from perf_audit.routes.deps import get_store
from perf_audit.schemas.build import HistoryStats
from perf_audit.services.build_store import BuildStore

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=HistoryStats)
async def get_stats(
    store: Annotated[BuildStore, Depends(get_store)],
    days: Annotated[int, Query(ge=1, le=3650)] = 30,
):
    """Bundle statistics, performance score history and the most frequent recommendations."""
    return HistoryStats(
        bundles=await store.get_bundle_stats(days),
        performance=await store.get_metric_stats("performance", days),
        recommendations=await store.get_frequent_recommendations(days),
    )
