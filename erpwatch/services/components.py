"""
Wiring of engine components from configuration.

Both the alert-engine process and the API build the same set of engines
over one store; this module keeps that wiring in one place.

Example:
    >>> store = InMemoryAlertStore()
    >>> components = build_components(AppConfig(), store, store)
    >>> scheduler = build_scheduler(components, AppConfig().engine)
"""

import asyncio
from dataclasses import dataclass
from typing import List, Optional

import structlog

from erpwatch.config.models import AppConfig, EngineConfig
from erpwatch.detection.archiving import ArchivingEngine, create_archiving_engine
from erpwatch.detection.channels import create_dispatcher
from erpwatch.detection.correlation import CorrelationEngine, create_correlation_engine
from erpwatch.detection.dispatcher import ChannelDispatcher
from erpwatch.detection.escalation import EscalationEngine
from erpwatch.detection.evaluator import create_evaluator
from erpwatch.detection.manager import (
    AlertEventPublisher,
    AlertManager,
    create_alert_manager,
)
from erpwatch.interfaces.alert_store import AlertStore
from erpwatch.interfaces.metric_source import MetricSource
from erpwatch.metrics.baseline import BaselineEngine, create_baseline_engine
from erpwatch.models.baseline import MetricKey
from erpwatch.services.scheduler import TaskScheduler

logger = structlog.get_logger(__name__)

TASK_BASELINE = "baseline"
TASK_CORRELATION = "correlation"
TASK_ESCALATION = "escalation"
TASK_ARCHIVING = "archiving"


@dataclass
class EngineComponents:
    """The engines sharing one store and one dispatcher."""

    store: AlertStore
    source: MetricSource
    dispatcher: ChannelDispatcher
    baseline: BaselineEngine
    manager: AlertManager
    correlation: CorrelationEngine
    escalation: EscalationEngine
    archiving: ArchivingEngine


def metric_keys_from_config(engine: EngineConfig) -> List[MetricKey]:
    """Build the baseline metric keys for the configured environment."""
    return [
        MetricKey(
            metric_name=metric.name,
            metric_type=metric.type,
            metric_class=metric.metric_class,
            environment=engine.environment,
        )
        for metric in engine.baseline.metrics
    ]


def build_components(
    config: AppConfig,
    store: AlertStore,
    source: MetricSource,
    dispatcher: Optional[ChannelDispatcher] = None,
    publisher: Optional[AlertEventPublisher] = None,
) -> EngineComponents:
    """
    Create every engine from configuration.

    Args:
        config: Application configuration.
        store: AlertStore shared by all engines.
        source: MetricSource for baseline calculation.
        dispatcher: Notification dispatcher (built from ``config.channels``
            when omitted).
        publisher: Optional alert event publisher.

    Returns:
        EngineComponents: The wired engines.
    """
    engine = config.engine
    dispatcher = dispatcher or create_dispatcher(config.channels)

    return EngineComponents(
        store=store,
        source=source,
        dispatcher=dispatcher,
        baseline=create_baseline_engine(
            store=store,
            source=source,
            metric_keys=metric_keys_from_config(engine),
            window_days=engine.baseline.window_days,
            min_samples=engine.baseline.min_samples,
        ),
        manager=create_alert_manager(
            store=store,
            evaluator=create_evaluator(
                bands=engine.evaluation.bands,
                fixed_thresholds=engine.evaluation.fixed_thresholds,
            ),
            publisher=publisher,
            dedup_window_minutes=engine.evaluation.dedup_window_minutes,
            suppression_cache_size=engine.evaluation.suppression_cache_size,
        ),
        correlation=create_correlation_engine(
            store=store,
            lookback_minutes=engine.correlation.lookback_minutes,
            time_window_minutes=engine.correlation.time_window_minutes,
            min_confidence=engine.correlation.min_confidence,
            confidence_per_dimension=engine.correlation.confidence_per_dimension,
            min_group_size=engine.correlation.min_group_size,
        ),
        escalation=EscalationEngine(store=store, dispatcher=dispatcher),
        archiving=create_archiving_engine(
            store=store,
            detail_retention_days=engine.archiving.detail_retention_days,
        ),
    )


def build_scheduler(
    components: EngineComponents,
    engine: EngineConfig,
    shutdown_event: Optional[asyncio.Event] = None,
) -> TaskScheduler:
    """
    Register the periodic engine cycles.

    Baseline, correlation and escalation always run; archiving only when
    enabled. Every cycle receives the shared shutdown event so long runs
    stop between units of work.
    """
    scheduler = TaskScheduler(shutdown_event)
    event = scheduler.shutdown_event

    async def recalculate_baselines() -> None:
        await components.baseline.recalculate_all(shutdown_event=event)

    async def correlate() -> None:
        await components.correlation.correlate(shutdown_event=event)

    async def escalate() -> None:
        await components.escalation.check_and_escalate(shutdown_event=event)

    async def archive() -> None:
        await components.archiving.archive()

    scheduler.add_task(
        TASK_BASELINE, engine.baseline.recalculation_hours * 3600, recalculate_baselines
    )
    scheduler.add_task(
        TASK_CORRELATION, engine.correlation.interval_minutes * 60, correlate
    )
    scheduler.add_task(
        TASK_ESCALATION, engine.escalation.interval_minutes * 60, escalate
    )
    if engine.archiving.enabled:
        scheduler.add_task(
            TASK_ARCHIVING, engine.archiving.interval_hours * 3600, archive
        )
    else:
        logger.info("archiving_disabled")

    return scheduler
