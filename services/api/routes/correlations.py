"""
Correlation (incident) API endpoints.

Provides:
    GET  /api/correlations                        - Incidents, newest first
    GET  /api/correlations/{correlation_id}       - One incident
    GET  /api/correlations/{correlation_id}/alerts - Member alerts
    POST /api/correlations/{correlation_id}/resolve - Resolve incident and members
    POST /api/correlations/{correlation_id}/close   - Resolved -> Closed
    POST /api/correlations/correlate              - Run one correlation cycle now
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from erpwatch.models.alerts import Alert
from erpwatch.models.correlation import AlertCorrelation, CorrelationStatus
from erpwatch.services.components import EngineComponents
from services.api.dependencies import CorrelationStateError, get_components

logger = structlog.get_logger(__name__)

router = APIRouter()


class CorrelationsResponse(BaseModel):
    correlations: List[AlertCorrelation]
    count: int


class CorrelationAlertsResponse(BaseModel):
    correlation_id: str
    alerts: List[Alert]
    count: int


class CorrelationRunResponse(BaseModel):
    """Response model for a correlation cycle."""

    created: List[AlertCorrelation]
    extended: List[AlertCorrelation]
    candidates: int
    interrupted: bool = False


@router.get(
    "/correlations",
    response_model=CorrelationsResponse,
    summary="List incidents",
)
async def list_correlations(
    status: Optional[CorrelationStatus] = Query(
        None,
        description="Status filter: 'Open', 'Resolved' or 'Closed'",
    ),
    components: EngineComponents = Depends(get_components),
) -> CorrelationsResponse:
    correlations = await components.correlation.list_correlations(status=status)
    return CorrelationsResponse(correlations=correlations, count=len(correlations))


# Registered before the {correlation_id} routes so "correlate" is not taken as an id.
@router.post(
    "/correlations/correlate",
    response_model=CorrelationRunResponse,
    summary="Run a correlation cycle",
    description="Groups recent uncorrelated active alerts into incidents.",
)
async def run_correlation(
    components: EngineComponents = Depends(get_components),
) -> CorrelationRunResponse:
    result = await components.correlation.correlate()
    logger.info(
        "api_correlation_run",
        created=len(result.created),
        extended=len(result.extended),
    )
    return CorrelationRunResponse(
        created=result.created,
        extended=result.extended,
        candidates=result.candidates,
        interrupted=result.interrupted,
    )


@router.get(
    "/correlations/{correlation_id}",
    response_model=AlertCorrelation,
    summary="Get an incident",
)
async def get_correlation(
    correlation_id: str,
    components: EngineComponents = Depends(get_components),
) -> AlertCorrelation:
    return await components.correlation.get_correlation(correlation_id)


@router.get(
    "/correlations/{correlation_id}/alerts",
    response_model=CorrelationAlertsResponse,
    summary="Get the member alerts of an incident",
)
async def get_correlation_alerts(
    correlation_id: str,
    components: EngineComponents = Depends(get_components),
) -> CorrelationAlertsResponse:
    alerts = await components.correlation.get_correlation_alerts(correlation_id)
    return CorrelationAlertsResponse(
        correlation_id=correlation_id,
        alerts=alerts,
        count=len(alerts),
    )


@router.post(
    "/correlations/{correlation_id}/resolve",
    response_model=AlertCorrelation,
    summary="Resolve an incident",
    description="Resolves the incident and every unresolved member alert.",
)
async def resolve_correlation(
    correlation_id: str,
    components: EngineComponents = Depends(get_components),
) -> AlertCorrelation:
    return await components.correlation.resolve_correlation(correlation_id)


@router.post(
    "/correlations/{correlation_id}/close",
    response_model=AlertCorrelation,
    summary="Close an incident",
    description="Closes a Resolved incident. Any other status answers 409.",
)
async def close_correlation(
    correlation_id: str,
    components: EngineComponents = Depends(get_components),
) -> AlertCorrelation:
    try:
        return await components.correlation.close_correlation(correlation_id)
    except ValueError as e:
        raise CorrelationStateError(str(e)) from e
