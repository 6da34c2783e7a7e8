"""
Alerts API endpoints.

Provides:
    GET  /api/alerts                          - Alerts, newest first
    GET  /api/alerts/{alert_id}               - One alert
    POST /api/alerts/{alert_id}/acknowledge   - Active -> Acknowledged
    POST /api/alerts/{alert_id}/resolve       - Active/Acknowledged -> Resolved

Lifecycle violations answer 409, unknown alerts 404.
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from erpwatch.models.alerts import Alert, AlertStatus
from erpwatch.services.components import EngineComponents
from services.api.dependencies import get_components

logger = structlog.get_logger(__name__)

router = APIRouter()


class AcknowledgeRequest(BaseModel):
    """Request body for acknowledging an alert."""

    acknowledged_by: str = Field(
        ...,
        description="Operator acknowledging the alert",
        min_length=1,
        max_length=100,
    )

    model_config = {
        "json_schema_extra": {"example": {"acknowledged_by": "jane.doe"}},
    }


class AlertsResponse(BaseModel):
    """Response model for the alerts listing."""

    alerts: List[Alert]
    count: int


@router.get(
    "/alerts",
    response_model=AlertsResponse,
    summary="List alerts",
    description="Lists alerts newest first, optionally filtered by status.",
)
async def list_alerts(
    status: Optional[AlertStatus] = Query(
        None,
        description="Status filter: 'Active', 'Acknowledged' or 'Resolved'",
    ),
    limit: int = Query(100, ge=1, le=1000, description="Maximum alerts returned"),
    components: EngineComponents = Depends(get_components),
) -> AlertsResponse:
    alerts = await components.manager.list_alerts(status=status, limit=limit)
    return AlertsResponse(alerts=alerts, count=len(alerts))


@router.get(
    "/alerts/{alert_id}",
    response_model=Alert,
    summary="Get an alert",
)
async def get_alert(
    alert_id: str,
    components: EngineComponents = Depends(get_components),
) -> Alert:
    return await components.manager.get_alert(alert_id)


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=Alert,
    summary="Acknowledge an alert",
    description="Moves an Active alert to Acknowledged. Any other status answers 409.",
)
async def acknowledge_alert(
    alert_id: str,
    request: AcknowledgeRequest,
    components: EngineComponents = Depends(get_components),
) -> Alert:
    """
    Acknowledge an alert.

    Args:
        alert_id: Alert identifier.
        request: Who acknowledges the alert.

    Returns:
        Alert: The acknowledged alert.
    """
    alert = await components.manager.acknowledge_alert(
        alert_id, request.acknowledged_by.strip()
    )
    logger.info(
        "api_alert_acknowledged",
        alert_id=alert_id,
        acknowledged_by=alert.acknowledged_by,
    )
    return alert


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=Alert,
    summary="Resolve an alert",
    description="Resolves an Active or Acknowledged alert. A resolved alert answers 409.",
)
async def resolve_alert(
    alert_id: str,
    components: EngineComponents = Depends(get_components),
) -> Alert:
    alert = await components.manager.resolve_alert(alert_id)
    logger.info("api_alert_resolved", alert_id=alert_id)
    return alert
