"""
Base class for long-running alert engine services.

ServiceRunner handles the parts every service shares: configuration
loading, logging, PostgreSQL and Redis connections, and signal-driven
shutdown. Subclasses implement ``_initialize``, ``_run`` and optionally
``_cleanup``.

Example:
    >>> class MyService(ServiceRunner):
    ...     @property
    ...     def service_name(self) -> str:
    ...         return "my-service"
    ...     async def _initialize(self) -> None: ...
    ...     async def _run(self) -> None:
    ...         await self.shutdown_event.wait()
    >>> await MyService("config").run()
"""

import asyncio
import signal
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from erpwatch.config.loader import load_config
from erpwatch.config.models import AppConfig
from erpwatch.services.logging_setup import setup_logging
from erpwatch.storage.postgres_client import PostgresClient
from erpwatch.storage.redis_client import RedisClient


class ServiceRunner(ABC):
    """
    Lifecycle skeleton for a service process.

    Attributes:
        config_path: Directory holding the YAML configuration.
        config: Loaded configuration (after startup).
        postgres_client: Connected PostgresClient (after startup).
        redis_client: Connected RedisClient (after startup).
        shutdown_event: Set on SIGINT/SIGTERM or by ``request_shutdown``.
    """

    def __init__(self, config_path: str = "config") -> None:
        self.config_path = config_path
        self.config: Optional[AppConfig] = None
        self.postgres_client: Optional[PostgresClient] = None
        self.redis_client: Optional[RedisClient] = None
        self.shutdown_event = asyncio.Event()
        self.logger = structlog.get_logger(self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Name used in logs."""

    @abstractmethod
    async def _initialize(self) -> None:
        """Create service components once clients are connected."""

    @abstractmethod
    async def _run(self) -> None:
        """Main loop; should return once ``shutdown_event`` is set."""

    async def _cleanup(self) -> None:
        """Service-specific cleanup before clients are closed."""

    def request_shutdown(self) -> None:
        if not self.shutdown_event.is_set():
            self.logger.info("shutdown_requested", service=self.service_name)
            self.shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                self.logger.debug("signal_handler_unavailable", signal=sig.name)

    async def _connect(self) -> None:
        if self.config is None:
            raise RuntimeError("Configuration not loaded")

        self.postgres_client = PostgresClient(self.config.postgres)
        await self.postgres_client.connect()
        await self.postgres_client.ensure_schema()

        self.redis_client = RedisClient(self.config.redis)
        await self.redis_client.connect()

    async def _disconnect(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.disconnect()
        if self.postgres_client is not None:
            await self.postgres_client.disconnect()

    async def run(self) -> None:
        """
        Load configuration, connect, run until shutdown, then clean up.

        Raises:
            ConfigLoadError: If configuration is invalid.
            PostgresConnectionException: If PostgreSQL is unreachable.
            RedisConnectionException: If Redis is unreachable.
        """
        self.config = load_config(self.config_path)
        setup_logging(self.config.log_level, self.config.engine.logging.format)
        self._install_signal_handlers()

        self.logger.info(
            "service_starting",
            service=self.service_name,
            environment=self.config.engine.environment,
        )

        try:
            await self._connect()
            await self._initialize()
            self.logger.info("service_started", service=self.service_name)
            await self._run()
        finally:
            try:
                await self._cleanup()
            finally:
                await self._disconnect()
            self.logger.info("service_stopped", service=self.service_name)
