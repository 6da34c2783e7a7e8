"""
Shared service infrastructure.

Components:
    logging_setup: structlog configuration
    runner: ServiceRunner base class for service processes
    scheduler: PeriodicTask and TaskScheduler for background cycles
    components: Engine wiring from configuration
"""

from erpwatch.services.components import (
    EngineComponents,
    build_components,
    build_scheduler,
    metric_keys_from_config,
)
from erpwatch.services.logging_setup import setup_logging
from erpwatch.services.runner import ServiceRunner
from erpwatch.services.scheduler import PeriodicTask, TaskScheduler, TaskStatus

__all__: list[str] = [
    "EngineComponents",
    "PeriodicTask",
    "ServiceRunner",
    "TaskScheduler",
    "TaskStatus",
    "build_components",
    "build_scheduler",
    "metric_keys_from_config",
    "setup_logging",
]
