"""
Archiving sweep for old resolved alerts and incidents.

Resolved correlations whose resolution is older than the retention cutoff
are closed, then resolved alerts created before the cutoff are deleted
when they are uncorrelated or belong to a Closed correlation. Alert counts
of affected correlations are recomputed afterwards.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import structlog

from erpwatch.interfaces.alert_store import AlertStore
from erpwatch.models.alerts import AlertStatus
from erpwatch.models.correlation import AlertCorrelation, CorrelationStatus

logger = structlog.get_logger(__name__)


DEFAULT_DETAIL_RETENTION_DAYS = 30
DEFAULT_BATCH_SIZE = 10_000


@dataclass(frozen=True)
class ArchiveResult:
    """Outcome of one archiving sweep."""

    alerts_deleted: int
    correlations_closed: int


class ArchivingEngine:
    """
    Deletes resolved alerts past retention and closes old incidents.

    Attributes:
        store: AlertStore holding alerts and correlations.
        detail_retention_days: Retention for resolved alert details.
        batch_size: Maximum alerts examined per sweep.
    """

    def __init__(
        self,
        store: AlertStore,
        detail_retention_days: int = DEFAULT_DETAIL_RETENTION_DAYS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if detail_retention_days < 1:
            raise ValueError(
                f"detail_retention_days must be >= 1, got {detail_retention_days}"
            )
        self.store = store
        self.detail_retention_days = detail_retention_days
        self.batch_size = batch_size

    async def archive(self, now: Optional[datetime] = None) -> ArchiveResult:
        """
        Run one archiving sweep.

        Args:
            now: Current time (defaults to now).

        Returns:
            ArchiveResult: Number of alerts deleted and correlations closed.
        """
        current = now or datetime.now(timezone.utc)
        cutoff = current - timedelta(days=self.detail_retention_days)
        start = time.monotonic()

        closed = 0
        for correlation in await self.store.list_correlations(status=CorrelationStatus.RESOLVED):
            if correlation.resolved_at is None or correlation.resolved_at >= cutoff:
                continue
            await self.store.update_correlation(
                correlation.model_copy(
                    update={"status": CorrelationStatus.CLOSED, "updated_at": current}
                )
            )
            closed += 1

        candidates = await self.store.list_alerts(
            status=AlertStatus.RESOLVED,
            limit=self.batch_size,
            created_before=cutoff,
        )
        correlations: Dict[str, Optional[AlertCorrelation]] = {}
        to_delete: List[str] = []
        affected: Set[str] = set()

        for alert in candidates:
            if alert.correlation_id is None:
                to_delete.append(alert.alert_id)
                continue
            if alert.correlation_id not in correlations:
                correlations[alert.correlation_id] = await self.store.get_correlation(
                    alert.correlation_id
                )
            correlation = correlations[alert.correlation_id]
            if correlation is None or correlation.status == CorrelationStatus.CLOSED:
                to_delete.append(alert.alert_id)
                affected.add(alert.correlation_id)

        deleted = await self.store.delete_alerts(to_delete) if to_delete else 0

        for correlation_id in sorted(affected):
            correlation = correlations.get(correlation_id)
            if correlation is None:
                continue
            count = await self.store.count_alerts_for_correlation(correlation_id)
            await self.store.update_correlation(
                correlation.model_copy(
                    update={
                        "status": CorrelationStatus.CLOSED,
                        "alert_count": count,
                        "updated_at": current,
                    }
                )
            )

        logger.info(
            "archive_completed",
            cutoff=cutoff.isoformat(),
            alerts_deleted=deleted,
            correlations_closed=closed,
            elapsed_ms=round((time.monotonic() - start) * 1000, 2),
        )
        if len(candidates) >= self.batch_size:
            logger.warning("archive_batch_full", batch_size=self.batch_size)

        return ArchiveResult(alerts_deleted=deleted, correlations_closed=closed)


def create_archiving_engine(
    store: AlertStore,
    detail_retention_days: int = DEFAULT_DETAIL_RETENTION_DAYS,
) -> ArchivingEngine:
    """Factory function to create an ArchivingEngine."""
    return ArchivingEngine(store=store, detail_retention_days=detail_retention_days)
