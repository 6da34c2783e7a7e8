"""
Async Redis client for sample intake and alert events.

Collectors publish metric samples on a pub/sub channel; the engine
subscribes to it and publishes alert lifecycle events for the dashboard.

Key Patterns:
    - Pub/Sub channels: `updates:metrics` (samples in), `updates:alerts` (events out)
    - Heartbeats: `heartbeat:{component}` (string with TTL)

Example:
    >>> from erpwatch.config.models import RedisConnectionConfig
    >>> from erpwatch.storage.redis_client import RedisClient
    >>>
    >>> client = RedisClient(RedisConnectionConfig(url="redis://localhost:6379"))
    >>> await client.connect()
    >>> async with client.metric_samples() as samples:
    ...     async for sample in samples:
    ...         await manager.process_sample(sample)
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

import structlog
from pydantic import ValidationError
from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.client import PubSub
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from erpwatch.config.models import RedisConnectionConfig
from erpwatch.models.alerts import Alert
from erpwatch.models.baseline import MetricSample

logger = structlog.get_logger(__name__)


class RedisClientError(Exception):
    """Base exception for Redis client errors."""


class RedisConnectionException(RedisClientError):
    """Redis could not be reached, or the client is not connected."""


class RedisOperationError(RedisClientError):
    """A publish or key operation failed."""


class RedisClient:
    """
    Redis access for the alert engine.

    One pooled client serves publishing and heartbeats; each sample
    subscription opens its own pub/sub connection from the pool.
    """

    KEY_HEARTBEAT = "heartbeat"

    CHANNEL_METRICS = "updates:metrics"
    CHANNEL_ALERTS = "updates:alerts"

    def __init__(
        self,
        config: RedisConnectionConfig,
        heartbeat_ttl_seconds: int = 900,
    ) -> None:
        self.config = config
        self.heartbeat_ttl_seconds = heartbeat_ttl_seconds
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None  # type: ignore[type-arg]
        self._connected: bool = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def connect(self) -> None:
        """
        Open the connection pool and verify it with a PING.

        Raises:
            RedisConnectionException: If Redis is unreachable.
        """
        if self._connected:
            return

        self._pool = ConnectionPool.from_url(
            self.config.url,
            db=self.config.db,
            max_connections=self.config.max_connections,
            socket_timeout=self.config.socket_timeout,
            socket_connect_timeout=self.config.socket_timeout,
            decode_responses=True,
        )
        self._client = Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            await self.disconnect()
            logger.error("redis_connection_failed", url=self.config.url, error=str(e))
            raise RedisConnectionException(
                f"Redis unreachable at {self.config.url}: {e}"
            ) from e

        self._connected = True
        logger.info("redis_connected", url=self.config.url, db=self.config.db)

    async def disconnect(self) -> None:
        """Close the client and its pool. Safe to call repeatedly."""
        client, pool = self._client, self._pool
        self._client = None
        self._pool = None
        self._connected = False

        if client is not None:
            try:
                await client.aclose()
            except RedisError as e:
                logger.warning("redis_close_error", error=str(e))
        if pool is not None:
            await pool.aclose()

    async def ping(self) -> bool:
        """True when Redis answers PING."""
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False

    def _require_connection(self) -> Redis:  # type: ignore[type-arg]
        if not self._connected or self._client is None:
            raise RedisConnectionException("Redis client is not connected")
        return self._client

    # =========================================================================
    # PUBLISHING
    # =========================================================================

    async def publish_alert_event(self, event_type: str, alert: Alert) -> int:
        """
        Publish an alert lifecycle event to subscribers.

        Args:
            event_type: Event name (e.g., "alert_created").
            alert: The alert the event refers to.

        Returns:
            int: Number of subscribers that received the message.

        Raises:
            RedisConnectionException: If not connected.
            RedisOperationError: If the operation fails.

        Example:
            >>> await client.publish_alert_event("alert_created", alert)
        """
        client = self._require_connection()

        try:
            message = json.dumps(
                {
                    "event": event_type,
                    "alert": alert.model_dump(mode="json"),
                }
            )
            count = await client.publish(self.CHANNEL_ALERTS, message)

            logger.debug(
                "alert_event_published",
                event_type=event_type,
                alert_id=alert.alert_id,
                subscribers=count,
            )

            return int(count)

        except RedisError as e:
            logger.error(
                "alert_event_publish_failed",
                event_type=event_type,
                alert_id=alert.alert_id,
                error=str(e),
            )
            raise RedisOperationError(
                f"Failed to publish alert event: {e}"
            ) from e

    # =========================================================================
    # HEARTBEATS
    # =========================================================================

    def _heartbeat_key(self, component: str) -> str:
        return f"{self.KEY_HEARTBEAT}:{component}"

    async def set_heartbeat(
        self,
        component: str,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """
        Record that a component completed a cycle.

        Args:
            component: Component name (e.g., "correlation").
            timestamp: Completion time, defaults to now.

        Raises:
            RedisOperationError: If the operation fails.
        """
        client = self._require_connection()
        ts = timestamp or datetime.now(timezone.utc)

        try:
            await client.set(
                self._heartbeat_key(component),
                ts.isoformat(),
                ex=self.heartbeat_ttl_seconds,
            )
        except RedisError as e:
            logger.error("heartbeat_set_failed", component=component, error=str(e))
            raise RedisOperationError(f"Failed to set heartbeat: {e}") from e

    async def get_heartbeats(self, components: List[str]) -> Dict[str, Optional[str]]:
        """
        Get the last heartbeat per component.

        Returns:
            Dict[str, Optional[str]]: ISO timestamps, None where expired or missing.
        """
        client = self._require_connection()
        if not components:
            return {}

        try:
            values = await client.mget([self._heartbeat_key(c) for c in components])
            return dict(zip(components, values))
        except RedisError as e:
            logger.error("heartbeat_get_failed", error=str(e))
            raise RedisOperationError(f"Failed to get heartbeats: {e}") from e

    # =========================================================================
    # SAMPLE INTAKE
    # =========================================================================

    @asynccontextmanager
    async def metric_samples(self) -> AsyncIterator[AsyncIterator[MetricSample]]:
        """
        Subscribe to metric samples published by collectors.

        Messages that do not parse as a MetricSample are logged and skipped.
        The subscription is dropped when the context exits.

        Example:
            >>> async with client.metric_samples() as samples:
            ...     async for sample in samples:
            ...         print(sample.key, sample.value)
        """
        pubsub: PubSub = self._require_connection().pubsub()
        await pubsub.subscribe(self.CHANNEL_METRICS)
        logger.info("metric_intake_subscribed", channel=self.CHANNEL_METRICS)

        async def sample_iterator() -> AsyncIterator[MetricSample]:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    yield MetricSample.model_validate_json(message["data"])
                except ValidationError as e:
                    logger.warning(
                        "metric_sample_invalid",
                        error_count=e.error_count(),
                        error=str(e),
                    )

        try:
            yield sample_iterator()
        finally:
            await pubsub.unsubscribe(self.CHANNEL_METRICS)
            await pubsub.aclose()
            logger.info("metric_intake_unsubscribed", channel=self.CHANNEL_METRICS)
