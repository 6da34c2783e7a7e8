"""
Alert Engine Service entry point.

This service is responsible for:
- Subscribing to Redis pub/sub for metric samples
- Recording samples and evaluating them into alerts
- Recalculating baselines every few hours
- Correlating alerts into incidents every 2 minutes
- Escalating unacknowledged alerts every 5 minutes
- Archiving old resolved alerts daily

Usage:
    python services/alert-engine/main.py

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379)
    DATABASE_URL: PostgreSQL connection URL
    LOG_LEVEL: Logging level (default: from engine.yaml)
    CONFIG_PATH: Path to config directory (default: config)
    SMTP_PASSWORD: Email channel password (optional)
    CHAT_WEBHOOK_URL: Chat channel webhook URL (optional)
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import structlog
from redis.exceptions import RedisError

# Add project root to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from erpwatch.models.baseline import MetricSample
from erpwatch.services import (
    EngineComponents,
    ServiceRunner,
    TaskScheduler,
    build_components,
    build_scheduler,
    setup_logging,
)
from erpwatch.storage.redis_client import RedisClientError

logger = structlog.get_logger(__name__)

SERVICE_NAME = "alert-engine"

# Heartbeat interval in seconds
HEARTBEAT_INTERVAL = 60

# Delay before resubscribing after a Redis failure
INTAKE_RETRY_DELAY = 5


class AlertEngineService(ServiceRunner):
    """
    Alert lifecycle service.

    Attributes:
        components: Engines wired over the PostgreSQL store.
        scheduler: Periodic cycles for baselines, correlation, escalation
            and archiving.
    """

    def __init__(self, config_path: str = "config") -> None:
        """Initialize the alert engine service."""
        super().__init__(config_path)
        self.components: Optional[EngineComponents] = None
        self.scheduler: Optional[TaskScheduler] = None
        self._intake_task: Optional[asyncio.Task] = None
        self._samples_processed = 0

    @property
    def service_name(self) -> str:
        """Return service name."""
        return SERVICE_NAME

    async def _initialize(self) -> None:
        """Create engines and register periodic cycles."""
        if self.config is None or self.redis_client is None or self.postgres_client is None:
            raise RuntimeError("Service not properly initialized")

        self.components = build_components(
            self.config,
            store=self.postgres_client,
            source=self.postgres_client,
            publisher=self.redis_client,
        )
        self.scheduler = build_scheduler(
            self.components,
            self.config.engine,
            shutdown_event=self.shutdown_event,
        )
        self.scheduler.add_task("heartbeat", HEARTBEAT_INTERVAL, self._heartbeat)

        self.logger.info(
            "engine_components_initialized",
            tasks=[task.name for task in self.scheduler.tasks],
            channels=self.components.dispatcher.channel_names,
        )

    async def _run(self) -> None:
        """Main service loop - run cycles and consume samples until shutdown."""
        if self.scheduler is None:
            raise RuntimeError("Service not properly initialized")

        self.scheduler.start()
        self._intake_task = asyncio.create_task(self._consume_samples())

        await self.shutdown_event.wait()

        self._intake_task.cancel()
        try:
            await self._intake_task
        except asyncio.CancelledError:
            self.logger.debug("sample_intake_cancelled")

        await self.scheduler.stop()

    async def _consume_samples(self) -> None:
        """Subscribe to metric samples and process each one."""
        if self.redis_client is None:
            raise RuntimeError("Service not properly initialized")

        while not self.shutdown_event.is_set():
            try:
                async with self.redis_client.metric_samples() as samples:
                    async for sample in samples:
                        if self.shutdown_event.is_set():
                            break
                        try:
                            await self._process_sample(sample)
                        except Exception as e:
                            self.logger.error(
                                "sample_processing_error",
                                metric_key=str(sample.key),
                                error=str(e),
                            )
            except (RedisClientError, RedisError) as e:
                self.logger.error("sample_intake_failed", error=str(e))
                await asyncio.sleep(INTAKE_RETRY_DELAY)

    async def _process_sample(self, sample: MetricSample) -> None:
        if self.components is None:
            return

        await self.components.source.record_sample(sample)
        result = await self.components.manager.process_sample(sample)
        self._samples_processed += 1

        if result.triggered:
            self.logger.info(
                "sample_triggered_alert",
                alert_id=result.alert_id,
                alert_type=result.alert_type,
                severity=result.severity.value if result.severity else None,
            )

    async def _heartbeat(self) -> None:
        """Publish the service heartbeat and each cycle's last success."""
        if self.redis_client is None:
            return

        await self.redis_client.set_heartbeat(self.service_name)
        if self.scheduler is None:
            return
        for name, status in self.scheduler.status().items():
            if name == "heartbeat" or status.last_success_at is None:
                continue
            await self.redis_client.set_heartbeat(name, status.last_success_at)

    async def _cleanup(self) -> None:
        """Service-specific cleanup."""
        self.logger.info(
            "cleanup_state",
            samples_processed=self._samples_processed,
        )
        if self.components is not None:
            await self.components.dispatcher.close()


async def main() -> None:
    """Main entry point."""
    # Set up initial logging
    setup_logging()

    config_path = os.getenv("CONFIG_PATH", "config")

    logger.info(
        "alert_engine_service_starting",
        version="1.0.0",
        config_path=config_path,
    )

    service = AlertEngineService(config_path=config_path)

    try:
        await service.run()
    except Exception as e:
        logger.error("service_failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
