"""
API service entry point.

This module initializes and runs the FastAPI alert engine API using Uvicorn.

Usage:
    python -m services.api.main

    Or with uvicorn directly:
    uvicorn services.api.main:app --host 0.0.0.0 --port 8060

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379)
    DATABASE_URL: PostgreSQL connection URL
    LOG_LEVEL: Logging level (default: INFO)
    CONFIG_PATH: Path to config directory (default: config)
    API_PORT: Port to run the API on (default: 8060)
    API_HOST: Host to bind to (default: 0.0.0.0)
"""

import os
import sys

import structlog
import uvicorn

from erpwatch.services.logging_setup import setup_logging


def main() -> None:
    """
    Main entry point for the API service.

    Configures logging and starts the Uvicorn server with the FastAPI application.
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    setup_logging(log_level, os.getenv("LOG_FORMAT", "json"))

    logger = structlog.get_logger(__name__)
    logger.info(
        "api_service_starting",
        version="1.0.0",
        python_version=sys.version,
    )

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8060"))

    uvicorn.run(
        "services.api.app:app",
        host=host,
        port=port,
        log_level=log_level.lower(),
        reload=False,
        workers=1,
        access_log=False,
    )


# Export the app for uvicorn direct usage
from services.api.app import app  # noqa: E402

if __name__ == "__main__":
    main()
