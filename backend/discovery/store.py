"""
The set of currently known providers of a service.

Keeps at most ``max_services`` records, unique by identity, and knows which
record will be the next one to go idle. It never schedules anything itself;
the discoverer decides when to call :meth:`DiscoverySet.remove_idle`.
"""

import logging
import time
from typing import Callable, Iterator, Optional

from discovery.models import ServiceRecord

logger = logging.getLogger(__name__)


def _age_order(record: ServiceRecord) -> tuple:
    # oldest first, ties broken by identity so eviction is reproducible
    return (record.last_seen, record.sort_key)


class DiscoverySet:
    """Bounded, deduplicated collection of discovered services."""

    def __init__(
        self,
        max_services: int,
        max_idle: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._records: dict[tuple, ServiceRecord] = {}
        self.max_services = max_services
        self.max_idle = max_idle
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ServiceRecord]:
        return iter(self.snapshot())

    def __contains__(self, record: ServiceRecord) -> bool:
        return record.identity in self._records

    def get(self, record: ServiceRecord) -> Optional[ServiceRecord]:
        """Return the stored record with the same identity, if any."""
        return self._records.get(record.identity)

    def upsert(self, record: ServiceRecord) -> bool:
        """Insert a record, or replace the stored one to refresh last_seen.

        Returns True when the record was not known before.
        """
        is_new = record.identity not in self._records
        self._records[record.identity] = record
        if is_new:
            logger.info(f"Discovered service: {record}")
        return is_new

    def oldest(self) -> Optional[ServiceRecord]:
        """The record with the smallest last_seen."""
        if not self._records:
            return None
        return min(self._records.values(), key=_age_order)

    def next_expiry(self) -> Optional[float]:
        """Clock time at which the oldest record becomes idle."""
        oldest = self.oldest()
        if oldest is None:
            return None
        return oldest.last_seen + self.max_idle

    def evict_over_capacity(self) -> Optional[ServiceRecord]:
        """Drop the oldest record if the set holds more than max_services."""
        if len(self._records) <= self.max_services:
            return None
        oldest = self.oldest()
        del self._records[oldest.identity]
        logger.info(f"Too many services, dropping oldest: {oldest}")
        return oldest

    def remove_idle(self, now: Optional[float] = None) -> list[ServiceRecord]:
        """Remove every record whose age has reached max_idle."""
        if now is None:
            now = self._clock()
        stale = [
            record for record in self._records.values()
            if record.age(now) >= self.max_idle
        ]
        for record in stale:
            del self._records[record.identity]
            logger.info(f"Service lost: {record}")
        return stale

    def clear(self) -> None:
        self._records.clear()

    def snapshot(self) -> tuple[ServiceRecord, ...]:
        """An immutable view of the set in canonical identity order."""
        return tuple(sorted(self._records.values()))
