"""
Abstract base class for metric sources.

The metric source is the external collector layer (batch jobs, sessions,
blocking chains, SQL health). The engine only reads historical samples
from it to build baselines.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from erpwatch.models.baseline import MetricKey, MetricSample


class MetricSource(ABC):
    """
    Read access to historical metric samples.

    Implementations may be remote; callers treat every call as fallible
    and do not retry.
    """

    @abstractmethod
    async def sample(
        self,
        key: MetricKey,
        start: datetime,
        end: datetime,
    ) -> List[MetricSample]:
        """
        Return samples for a metric key within ``[start, end]``.

        Args:
            key: Metric identity.
            start: Inclusive window start.
            end: Inclusive window end.

        Returns:
            List[MetricSample]: Samples ordered by timestamp.
        """
        pass

    @abstractmethod
    async def record_sample(self, sample: MetricSample) -> None:
        """
        Persist a sample received from a collector.

        Args:
            sample: The sample to store.
        """
        pass
