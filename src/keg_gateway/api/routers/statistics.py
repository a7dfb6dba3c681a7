"""
keg_gateway.api.routers.statistics

Archive statistics endpoints.

Responsibilities:
- Expose per-dimension occurrence counts (`/v1/archive/statistics/{dimension}`).
- Reject unknown dimensions at the routing layer (422) before the store is asked.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from keg_gateway.api.deps import statistics_aggregator
from keg_gateway.archive.statistics import Dimension, StatisticsAggregator
from keg_gateway.auth.deps import get_claims
from keg_gateway.auth.models import TokenClaims

router = APIRouter(prefix="/v1/archive/statistics", tags=["statistics"])


@router.get("/{dimension}", response_model=dict[str, int])
async def statistic(
    dimension: Dimension,
    claims: TokenClaims = Depends(get_claims),
    aggregator: StatisticsAggregator = Depends(statistics_aggregator),
) -> dict[str, int]:
    return await aggregator.aggregate(claims, dimension)
