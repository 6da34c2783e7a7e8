"""
Baseline API endpoints.

Provides:
    GET  /api/baselines               - Stored baselines
    POST /api/baselines/recalculate   - Recalculate all configured metrics now
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from erpwatch.models.baseline import MetricBaseline
from erpwatch.services.components import EngineComponents
from services.api.dependencies import get_components

logger = structlog.get_logger(__name__)

router = APIRouter()


class BaselinesResponse(BaseModel):
    baselines: List[MetricBaseline]
    count: int


class RecalculationResponse(BaseModel):
    """Response model for a baseline recalculation run."""

    calculated: List[str]
    skipped: List[str]
    failed: List[str]
    interrupted: bool = False

    model_config = {
        "json_schema_extra": {
            "example": {
                "calculated": ["Batch Job Duration|duration|Payroll|PROD"],
                "skipped": ["SQL CPU Usage|cpuusage||PROD"],
                "failed": [],
                "interrupted": False,
            }
        }
    }


@router.get(
    "/baselines",
    response_model=BaselinesResponse,
    summary="List baselines",
)
async def list_baselines(
    environment: Optional[str] = Query(None, description="Environment filter, e.g. 'PROD'"),
    latest_only: bool = Query(True, description="Only the newest baseline per metric"),
    components: EngineComponents = Depends(get_components),
) -> BaselinesResponse:
    baselines = await components.store.list_baselines(
        environment=environment,
        latest_only=latest_only,
    )
    return BaselinesResponse(baselines=baselines, count=len(baselines))


@router.post(
    "/baselines/recalculate",
    response_model=RecalculationResponse,
    summary="Recalculate baselines",
    description="Recomputes baselines for every configured metric from the rolling window.",
)
async def recalculate_baselines(
    components: EngineComponents = Depends(get_components),
) -> RecalculationResponse:
    summary = await components.baseline.recalculate_all()
    logger.info(
        "api_baselines_recalculated",
        calculated=len(summary.calculated),
        skipped=len(summary.skipped),
        failed=len(summary.failed),
    )
    return RecalculationResponse(
        calculated=summary.calculated,
        skipped=summary.skipped,
        failed=summary.failed,
        interrupted=summary.interrupted,
    )
