"""
FastAPI application for the ERP alert engine.

This module creates and configures the FastAPI application with:
- CORS configuration for cross-origin requests
- Router registration for API endpoints under /api
- Lifespan events for database connection management
- Exception handlers mapping domain errors to HTTP status codes

Error mapping:
    NotFoundError -> 404
    AlertTransitionError, CorrelationStateError -> 409
    PostgresClientError -> 503

Example:
    >>> from services.api.app import create_app
    >>> app = create_app()
    >>> # Run with uvicorn
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8060)
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from erpwatch.config.loader import load_config
from erpwatch.interfaces.alert_store import NotFoundError
from erpwatch.models.alerts import AlertTransitionError
from erpwatch.services.components import build_components
from erpwatch.storage.postgres_client import PostgresClient, PostgresClientError
from erpwatch.storage.redis_client import RedisClient
from services.api.dependencies import AppState, CorrelationStateError

logger = structlog.get_logger(__name__)


async def _startup(state: AppState) -> None:
    """Load configuration and connect storage clients."""
    config_path = os.getenv("CONFIG_PATH", "config")
    state.config = load_config(config_path)

    try:
        state.postgres_client = PostgresClient(state.config.postgres)
        await state.postgres_client.connect()
        await state.postgres_client.ensure_schema()
    except PostgresClientError as e:
        logger.warning(
            "postgres_connection_failed",
            error=str(e),
            message="API will answer 503 until restarted with a reachable database",
        )
        state.postgres_client = None

    try:
        state.redis_client = RedisClient(state.config.redis)
        await state.redis_client.connect()
    except Exception as e:
        logger.warning(
            "redis_connection_failed",
            error=str(e),
            message="API will run without alert event publishing",
        )
        state.redis_client = None

    if state.postgres_client is not None:
        state.components = build_components(
            state.config,
            store=state.postgres_client,
            source=state.postgres_client,
            publisher=state.redis_client,
        )


async def _shutdown(state: AppState) -> None:
    if state.components is not None:
        await state.components.dispatcher.close()

    if state.redis_client is not None:
        try:
            await state.redis_client.disconnect()
        except Exception as e:
            logger.error("redis_disconnect_error", error=str(e))

    if state.postgres_client is not None:
        try:
            await state.postgres_client.disconnect()
        except Exception as e:
            logger.error("postgres_disconnect_error", error=str(e))


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(AlertTransitionError)
    async def transition_handler(request: Request, exc: AlertTransitionError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "current_status": exc.current_status.value,
            },
        )

    @app.exception_handler(CorrelationStateError)
    async def correlation_state_handler(
        request: Request, exc: CorrelationStateError
    ) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(PostgresClientError)
    async def store_error_handler(request: Request, exc: PostgresClientError) -> JSONResponse:
        logger.error("store_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": "alert store unavailable"})


def create_app(state: Optional[AppState] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        state: Prebuilt application state. When given, startup does not
            load configuration or connect to PostgreSQL and Redis.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    context = state or AppState()
    managed = state is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("api_starting")
        if managed:
            await _startup(context)
        context.start_time = datetime.now(timezone.utc)
        logger.info("api_ready", store_available=context.components is not None)

        yield

        logger.info("api_shutting_down")
        if managed:
            await _shutdown(context)
        logger.info("api_shutdown_complete")

    app = FastAPI(
        title="ERP Alert Engine",
        description="Alert lifecycle, correlation and escalation for ERP monitoring",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.context = context

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    # Register API routers
    from services.api.routes.alerts import router as alerts_router
    from services.api.routes.baselines import router as baselines_router
    from services.api.routes.correlations import router as correlations_router
    from services.api.routes.escalation import router as escalation_router
    from services.api.routes.health import router as health_router

    app.include_router(alerts_router, prefix="/api", tags=["Alerts"])
    app.include_router(escalation_router, prefix="/api", tags=["Escalation"])
    app.include_router(correlations_router, prefix="/api", tags=["Correlations"])
    app.include_router(baselines_router, prefix="/api", tags=["Baselines"])
    app.include_router(health_router, prefix="/api", tags=["Health"])

    logger.info("fastapi_app_created")

    return app


# Create the application instance
app = create_app()
