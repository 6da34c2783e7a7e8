"""
Health API endpoint for system status.

Provides:
    GET /api/health - Store and Redis reachability, background cycle
                      heartbeats and enabled notification channels
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from erpwatch.services.components import (
    TASK_ARCHIVING,
    TASK_BASELINE,
    TASK_CORRELATION,
    TASK_ESCALATION,
)
from services.api.dependencies import AppState, get_state

logger = structlog.get_logger(__name__)

router = APIRouter()

ENGINE_COMPONENTS = [
    "alert-engine",
    TASK_BASELINE,
    TASK_CORRELATION,
    TASK_ESCALATION,
    TASK_ARCHIVING,
]


class InfrastructureHealthModel(BaseModel):
    """Model for infrastructure health status."""

    store: str = "unknown"
    redis: str = "unknown"


class HealthResponse(BaseModel):
    """Response model for health endpoint."""

    status: str = "unknown"
    infrastructure: InfrastructureHealthModel
    heartbeats: Dict[str, Optional[str]]
    channels: List[str]
    uptime_seconds: int = 0
    timestamp: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "status": "healthy",
                "infrastructure": {"store": "connected", "redis": "connected"},
                "heartbeats": {
                    "alert-engine": "2026-01-26T12:34:00+00:00",
                    "correlation": "2026-01-26T12:33:10+00:00",
                },
                "channels": ["email"],
                "uptime_seconds": 15780,
                "timestamp": "2026-01-26T12:34:57+00:00",
            }
        }
    }


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Get system health status",
    description="Reports store and Redis reachability and engine heartbeats.",
)
async def get_health(state: AppState = Depends(get_state)) -> HealthResponse:
    """
    Get system health status.

    The status is "healthy" when the store answers, "degraded" when only
    Redis is down, and "unhealthy" when the store is unavailable.

    Returns:
        HealthResponse: Complete system health status.
    """
    now = datetime.now(timezone.utc)
    uptime_seconds = int((now - state.start_time).total_seconds())

    store_status = "disconnected"
    channels: List[str] = []
    if state.components is not None:
        channels = state.components.dispatcher.channel_names
        try:
            store_status = "connected" if await state.components.store.ping() else "error"
        except Exception as e:
            logger.warning("health_store_check_failed", error=str(e))
            store_status = "error"

    redis_status = "disconnected"
    heartbeats: Dict[str, Optional[str]] = {}
    if state.redis_client is not None:
        try:
            if await state.redis_client.ping():
                redis_status = "connected"
                heartbeats = await state.redis_client.get_heartbeats(ENGINE_COMPONENTS)
            else:
                redis_status = "error"
        except Exception as e:
            logger.warning("health_redis_check_failed", error=str(e))
            redis_status = "error"

    if store_status != "connected":
        overall = "unhealthy"
    elif redis_status != "connected":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        infrastructure=InfrastructureHealthModel(store=store_status, redis=redis_status),
        heartbeats=heartbeats,
        channels=channels,
        uptime_seconds=uptime_seconds,
        timestamp=now.isoformat(),
    )
