"""
Shared state and FastAPI dependencies for the API routers.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, Request

from erpwatch.config.models import AppConfig
from erpwatch.services.components import EngineComponents
from erpwatch.storage.postgres_client import PostgresClient
from erpwatch.storage.redis_client import RedisClient


class CorrelationStateError(Exception):
    """Raised when a correlation transition is not allowed (e.g., close while Open)."""


class AppState:
    """
    Application state container.

    Holds the configuration, storage clients and engine components that are
    initialized during application startup and closed on shutdown. Tests
    pass a prebuilt state over the in-memory store.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        components: Optional[EngineComponents] = None,
    ) -> None:
        self.config: AppConfig = config or AppConfig()
        self.components: Optional[EngineComponents] = components
        self.postgres_client: Optional[PostgresClient] = None
        self.redis_client: Optional[RedisClient] = None
        self.start_time: datetime = datetime.now(timezone.utc)


def get_state(request: Request) -> AppState:
    """FastAPI dependency returning the application state."""
    return request.app.state.context


def get_components(request: Request) -> EngineComponents:
    """
    FastAPI dependency returning the engine components.

    Raises:
        HTTPException: 503 if the store is not available.
    """
    components = get_state(request).components
    if components is None:
        raise HTTPException(status_code=503, detail="alert store unavailable")
    return components
