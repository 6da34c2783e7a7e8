"""
Storage clients for the ERP alert engine.

Components:
    postgres_client: Async PostgreSQL AlertStore and MetricSource
    redis_client: Async Redis client for sample intake and alert events
    memory_store: In-memory AlertStore and MetricSource
    schema: PostgreSQL DDL
"""

from erpwatch.storage.memory_store import InMemoryAlertStore
from erpwatch.storage.postgres_client import (
    PostgresClient,
    PostgresClientError,
    PostgresConnectionException,
    PostgresOperationError,
)
from erpwatch.storage.redis_client import (
    RedisClient,
    RedisClientError,
    RedisConnectionException,
    RedisOperationError,
)

__all__: list[str] = [
    # Memory
    "InMemoryAlertStore",
    # PostgreSQL
    "PostgresClient",
    "PostgresClientError",
    "PostgresConnectionException",
    "PostgresOperationError",
    # Redis
    "RedisClient",
    "RedisClientError",
    "RedisConnectionException",
    "RedisOperationError",
]
