"""
Bounded, time-evicting key map for suppression bookkeeping.

The alert manager uses this map to remember which alert was created for a
dedup key, so a repeated anomaly within the suppression window is
recognized without a store round trip. Entries expire after a TTL and the
map never holds more than ``max_entries`` keys; the oldest entries are
evicted first.

Example:
    >>> cache = ExpiringKeyMap(max_entries=1000, ttl_seconds=600)
    >>> cache.set("SQL CPU Usage Anomaly|SQL CPU Usage|cpuusage||PROD", "ALERT_...")
    >>> cache.get("SQL CPU Usage Anomaly|SQL CPU Usage|cpuusage||PROD")
    'ALERT_...'
"""

import time
from collections import OrderedDict
from typing import Callable, Generic, Optional, Tuple, TypeVar

import structlog

logger = structlog.get_logger(__name__)

V = TypeVar("V")


class ExpiringKeyMap(Generic[V]):
    """
    Insertion-ordered map with per-entry TTL and a size bound.

    Attributes:
        max_entries: Maximum number of keys held.
        ttl_seconds: Lifetime of an entry from its last ``set``.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        ttl_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the map.

        Args:
            max_entries: Maximum number of keys held (>= 1).
            ttl_seconds: Entry lifetime in seconds (>= 0).
            clock: Monotonic time source, injectable for tests.

        Raises:
            ValueError: If max_entries < 1 or ttl_seconds < 0.
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, V]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[V]:
        """
        Return the value for a key, or None if missing or expired.

        Expired entries are removed on access.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        """
        Insert or refresh a key.

        Refreshing moves the key to the newest position. When the map is
        full the oldest entry is evicted.
        """
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("suppression_entry_evicted", key=evicted)

    def discard(self, key: str) -> None:
        """Remove a key if present."""
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            int: Number of entries removed.
        """
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()
