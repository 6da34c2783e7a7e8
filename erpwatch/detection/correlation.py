"""
Correlation engine for grouping related alerts into incidents.

This module provides the CorrelationEngine class which scans recent,
uncorrelated Active alerts and groups them into AlertCorrelations, either
by extending an Open correlation or by creating a new one.

Key Features:
    - Confidence scoring over four dimensions (type, severity, time span,
      originating server), each worth a fixed number of points
    - Greedy, deterministic assignment: candidates are processed in
      (created_at, alert_id) order and ties go to the earliest group
    - Idempotent: a rerun over an unchanged alert set writes nothing
    - Incident resolution cascades to member alerts

Example:
    >>> engine = CorrelationEngine(store)
    >>> result = await engine.correlate()
    >>> for correlation in result.created:
    ...     print(correlation.title, correlation.confidence_score)
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import structlog

from erpwatch.interfaces.alert_store import AlertStore, NotFoundError
from erpwatch.models.alerts import Alert, AlertSeverity
from erpwatch.models.correlation import (
    AlertCorrelation,
    CorrelationStatus,
    generate_correlation_id,
)

logger = structlog.get_logger(__name__)


# Default configuration values
DEFAULT_LOOKBACK_MINUTES = 60
DEFAULT_TIME_WINDOW_MINUTES = 10
DEFAULT_MIN_CONFIDENCE = 50
DEFAULT_CONFIDENCE_PER_DIMENSION = 25
DEFAULT_MIN_GROUP_SIZE = 2

MAX_CONFIDENCE = 100


@dataclass
class CorrelationRunResult:
    """
    Outcome of one correlation cycle.

    Attributes:
        created: Newly created correlations.
        extended: Open correlations that gained members.
        candidates: Number of uncorrelated candidates considered.
        interrupted: True if shutdown stopped persistence early.
    """

    created: List[AlertCorrelation] = field(default_factory=list)
    extended: List[AlertCorrelation] = field(default_factory=list)
    candidates: int = 0
    interrupted: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.created or self.extended)


@dataclass
class _Group:
    """Working group during one correlation cycle."""

    members: List[Alert]
    confidence: int
    seed: Optional[AlertCorrelation] = None
    added: List[Alert] = field(default_factory=list)


class CorrelationEngine:
    """
    Groups related alerts into incidents.

    Scoring: a group earns ``confidence_per_dimension`` points for each of
        - all members share an alert type
        - all members share a severity
        - creation timestamps span at most ``time_window_minutes``
        - all members carry the same non-empty server tag
    capped at 100.

    Attributes:
        store: AlertStore for alerts and correlations.
        lookback_minutes: Only alerts created within this window are candidates.
        time_window_minutes: Maximum span for the time dimension.
        min_confidence: Minimum confidence to join or form a group.
        confidence_per_dimension: Points per matching dimension.
        min_group_size: Minimum members for a new correlation.
    """

    def __init__(
        self,
        store: AlertStore,
        lookback_minutes: int = DEFAULT_LOOKBACK_MINUTES,
        time_window_minutes: int = DEFAULT_TIME_WINDOW_MINUTES,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        confidence_per_dimension: int = DEFAULT_CONFIDENCE_PER_DIMENSION,
        min_group_size: int = DEFAULT_MIN_GROUP_SIZE,
    ) -> None:
        self.store = store
        self.lookback_minutes = lookback_minutes
        self.time_window_minutes = time_window_minutes
        self.min_confidence = min_confidence
        self.confidence_per_dimension = confidence_per_dimension
        self.min_group_size = min_group_size

        logger.info(
            "correlation_engine_initialized",
            lookback_minutes=lookback_minutes,
            time_window_minutes=time_window_minutes,
            min_confidence=min_confidence,
        )

    # =========================================================================
    # SCORING
    # =========================================================================

    def score(self, alerts: Sequence[Alert]) -> Tuple[int, str]:
        """
        Score a set of alerts and describe the matching dimensions.

        Args:
            alerts: Non-empty group of alerts.

        Returns:
            Tuple[int, str]: Confidence (0-100) and the reason text.

        Example:
            >>> confidence, reason = engine.score([alert_a, alert_b])
            >>> reason
            'Same type (Blocking Detected), same severity, within 10-minute window, same server (AOS01)'
        """
        if not alerts:
            return 0, ""

        first = alerts[0]
        parts: List[str] = []

        if all(a.alert_type == first.alert_type for a in alerts):
            parts.append(f"same type ({first.alert_type})")
        if all(a.severity == first.severity for a in alerts):
            parts.append("same severity")

        created = [a.created_at for a in alerts]
        span_minutes = (max(created) - min(created)).total_seconds() / 60.0
        if span_minutes <= self.time_window_minutes:
            parts.append(f"within {self.time_window_minutes}-minute window")

        server = first.server
        if server and all(a.server == server for a in alerts):
            parts.append(f"same server ({server})")

        confidence = min(MAX_CONFIDENCE, len(parts) * self.confidence_per_dimension)
        if not parts:
            return confidence, "Multiple related alerts detected"
        reason = ", ".join(parts)
        return confidence, reason[0].upper() + reason[1:]

    # =========================================================================
    # CORRELATION CYCLE
    # =========================================================================

    async def correlate(
        self,
        now: Optional[datetime] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> CorrelationRunResult:
        """
        Run one correlation cycle.

        Args:
            now: Current time (defaults to now).
            shutdown_event: Stops persistence between groups when set.

        Returns:
            CorrelationRunResult: Created and extended correlations.

        Raises:
            Exception: Store errors propagate to the caller.
        """
        current = now or datetime.now(timezone.utc)
        start = time.monotonic()
        result = CorrelationRunResult()

        since = current - timedelta(minutes=self.lookback_minutes)
        candidates = await self.store.get_uncorrelated_active_alerts(since)
        candidates.sort(key=lambda a: (a.created_at, a.alert_id))
        result.candidates = len(candidates)

        if not candidates:
            logger.debug("correlation_no_candidates")
            return result

        groups = await self._seed_groups()
        for candidate in candidates:
            self._assign(candidate, groups)

        for group in groups:
            if shutdown_event is not None and shutdown_event.is_set():
                result.interrupted = True
                logger.info("correlation_run_interrupted")
                break
            if group.seed is not None:
                if group.added:
                    result.extended.append(await self._extend(group.seed, group, current))
            elif (
                len(group.members) >= self.min_group_size
                and group.confidence >= self.min_confidence
            ):
                result.created.append(await self._create(group, current))

        logger.info(
            "correlation_run_completed",
            candidates=result.candidates,
            created=len(result.created),
            extended=len(result.extended),
            elapsed_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return result

    async def _seed_groups(self) -> List[_Group]:
        """Build one group per Open correlation from its unresolved members."""
        groups: List[_Group] = []
        open_correlations = await self.store.list_correlations(status=CorrelationStatus.OPEN)
        open_correlations.sort(key=lambda c: (c.first_detected_at, c.correlation_id))

        for correlation in open_correlations:
            members = [
                a
                for a in await self.store.get_alerts_for_correlation(correlation.correlation_id)
                if not a.is_resolved
            ]
            if not members:
                continue
            confidence, _ = self.score(members)
            groups.append(_Group(members=members, confidence=confidence, seed=correlation))
        return groups

    def _assign(self, candidate: Alert, groups: List[_Group]) -> None:
        """Add a candidate to the best group, or start a new one."""
        best: Optional[_Group] = None
        best_confidence = -1

        for group in groups:
            confidence, _ = self.score(group.members + [candidate])
            if confidence < self.min_confidence:
                continue
            if len(group.members) >= 2 and confidence < group.confidence:
                continue
            if confidence > best_confidence:
                best, best_confidence = group, confidence

        if best is None:
            confidence, _ = self.score([candidate])
            groups.append(_Group(members=[candidate], confidence=confidence))
            return

        best.members.append(candidate)
        best.added.append(candidate)
        best.confidence = best_confidence

    async def _create(self, group: _Group, now: datetime) -> AlertCorrelation:
        members = group.members
        first = members[0]
        confidence, reason = self.score(members)

        correlation = AlertCorrelation(
            correlation_id=generate_correlation_id(now),
            title=f"Incident: {first.alert_type} ({len(members)} alerts)",
            description=(
                f"Correlated {len(members)} alerts of type '{first.alert_type}' "
                "detected within a short time window."
            ),
            severity=AlertSeverity.highest(a.severity for a in members),
            status=CorrelationStatus.OPEN,
            first_detected_at=min(a.created_at for a in members),
            alert_count=len(members),
            confidence_score=confidence,
            correlation_reason=reason,
            created_at=now,
        )
        await self.store.insert_correlation(correlation)
        for alert in members:
            await self.store.set_alert_correlation(alert.alert_id, correlation.correlation_id)

        logger.info(
            "correlation_created",
            correlation_id=correlation.correlation_id,
            alert_count=len(members),
            confidence=confidence,
            reason=reason,
        )
        return correlation

    async def _extend(
        self, seed: AlertCorrelation, group: _Group, now: datetime
    ) -> AlertCorrelation:
        for alert in group.added:
            await self.store.set_alert_correlation(alert.alert_id, seed.correlation_id)

        confidence, reason = self.score(group.members)
        alert_count = await self.store.count_alerts_for_correlation(seed.correlation_id)
        first_type = group.members[0].alert_type
        updated = seed.model_copy(
            update={
                "title": f"Incident: {first_type} ({alert_count} alerts)",
                "alert_count": alert_count,
                "severity": AlertSeverity.highest(
                    [seed.severity] + [a.severity for a in group.members]
                ),
                "confidence_score": max(seed.confidence_score, confidence),
                "correlation_reason": reason,
                "first_detected_at": min(
                    [seed.first_detected_at] + [a.created_at for a in group.added]
                ),
                "updated_at": now,
            }
        )
        await self.store.update_correlation(updated)

        logger.info(
            "correlation_extended",
            correlation_id=seed.correlation_id,
            added=len(group.added),
            alert_count=alert_count,
        )
        return updated

    # =========================================================================
    # INCIDENT OPERATIONS
    # =========================================================================

    async def get_correlation(self, correlation_id: str) -> AlertCorrelation:
        """
        Get a correlation by identifier.

        Raises:
            NotFoundError: If the correlation does not exist.
        """
        correlation = await self.store.get_correlation(correlation_id)
        if correlation is None:
            raise NotFoundError("correlation", correlation_id)
        return correlation

    async def list_correlations(
        self,
        status: Optional[CorrelationStatus] = None,
    ) -> List[AlertCorrelation]:
        """List correlations, most recently detected first."""
        return await self.store.list_correlations(status=status)

    async def get_correlation_alerts(self, correlation_id: str) -> List[Alert]:
        """
        Get the member alerts of a correlation.

        Raises:
            NotFoundError: If the correlation does not exist.
        """
        await self.get_correlation(correlation_id)
        return await self.store.get_alerts_for_correlation(correlation_id)

    async def resolve_correlation(
        self,
        correlation_id: str,
        now: Optional[datetime] = None,
    ) -> AlertCorrelation:
        """
        Resolve an incident and every unresolved member alert.

        Resolving a correlation that is not Open returns it unchanged.

        Args:
            correlation_id: Correlation identifier.
            now: Resolution time (defaults to now).

        Returns:
            AlertCorrelation: The resolved correlation.

        Raises:
            NotFoundError: If the correlation does not exist.
        """
        current = now or datetime.now(timezone.utc)
        correlation = await self.get_correlation(correlation_id)
        if not correlation.is_open:
            logger.info(
                "correlation_already_resolved",
                correlation_id=correlation_id,
                status=correlation.status.value,
            )
            return correlation

        resolved_alerts = 0
        for alert in await self.store.get_alerts_for_correlation(correlation_id):
            if alert.is_resolved:
                continue
            await self.store.update_alert(alert.resolve(current))
            resolved_alerts += 1

        updated = correlation.model_copy(
            update={
                "status": CorrelationStatus.RESOLVED,
                "resolved_at": current,
                "updated_at": current,
            }
        )
        await self.store.update_correlation(updated)

        logger.info(
            "correlation_resolved",
            correlation_id=correlation_id,
            resolved_alerts=resolved_alerts,
        )
        return updated

    async def close_correlation(
        self,
        correlation_id: str,
        now: Optional[datetime] = None,
    ) -> AlertCorrelation:
        """
        Move a Resolved correlation to Closed.

        Raises:
            NotFoundError: If the correlation does not exist.
            ValueError: If the correlation is not Resolved.
        """
        correlation = await self.get_correlation(correlation_id)
        if correlation.status != CorrelationStatus.RESOLVED:
            raise ValueError(
                f"correlation {correlation_id} is {correlation.status.value}, not Resolved"
            )
        updated = correlation.model_copy(
            update={
                "status": CorrelationStatus.CLOSED,
                "updated_at": now or datetime.now(timezone.utc),
            }
        )
        await self.store.update_correlation(updated)
        logger.info("correlation_closed", correlation_id=correlation_id)
        return updated


def create_correlation_engine(
    store: AlertStore,
    lookback_minutes: int = DEFAULT_LOOKBACK_MINUTES,
    time_window_minutes: int = DEFAULT_TIME_WINDOW_MINUTES,
    min_confidence: int = DEFAULT_MIN_CONFIDENCE,
    confidence_per_dimension: int = DEFAULT_CONFIDENCE_PER_DIMENSION,
    min_group_size: int = DEFAULT_MIN_GROUP_SIZE,
) -> CorrelationEngine:
    """
    Factory function to create a CorrelationEngine.

    Example:
        >>> engine = create_correlation_engine(store, lookback_minutes=30)
    """
    return CorrelationEngine(
        store=store,
        lookback_minutes=lookback_minutes,
        time_window_minutes=time_window_minutes,
        min_confidence=min_confidence,
        confidence_per_dimension=confidence_per_dimension,
        min_group_size=min_group_size,
    )
