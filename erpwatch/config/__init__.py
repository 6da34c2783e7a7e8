"""
Configuration management for the ERP alert engine.

Configuration is loaded from YAML files in the config/ directory:
    - engine.yaml: Baseline, evaluation, correlation, escalation,
      archiving and logging settings
    - channels.yaml: Email and chat notification channels

Environment variables override connection settings and secrets:
    - DATABASE_URL, REDIS_URL, LOG_LEVEL, SMTP_PASSWORD, CHAT_WEBHOOK_URL

Example:
    >>> from erpwatch.config import load_config
    >>> config = load_config()
    >>> config.engine.correlation.min_confidence
    50

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
"""

from erpwatch.config.loader import ConfigLoadError, ConfigLoader, load_config
from erpwatch.config.models import (
    # Enums
    LogFormat,
    LogLevel,
    # Engine config
    ArchivingConfig,
    BaselineConfig,
    BaselineMetricConfig,
    CorrelationConfig,
    DeviationBands,
    EngineConfig,
    EscalationConfig,
    EvaluationConfig,
    FixedThreshold,
    LoggingConfig,
    # Channels config
    ChannelsConfig,
    ChatChannelConfig,
    EmailChannelConfig,
    # Connection config
    PostgresConnectionConfig,
    RedisConnectionConfig,
    # Root config
    AppConfig,
)

__all__: list[str] = [
    # Loader
    "load_config",
    "ConfigLoader",
    "ConfigLoadError",
    # Enums
    "LogFormat",
    "LogLevel",
    # Engine config
    "ArchivingConfig",
    "BaselineConfig",
    "BaselineMetricConfig",
    "CorrelationConfig",
    "DeviationBands",
    "EngineConfig",
    "EscalationConfig",
    "EvaluationConfig",
    "FixedThreshold",
    "LoggingConfig",
    # Channels config
    "ChannelsConfig",
    "ChatChannelConfig",
    "EmailChannelConfig",
    # Connection config
    "PostgresConnectionConfig",
    "RedisConnectionConfig",
    # Root config
    "AppConfig",
]
