"""Per-fingerprint running statistics and the end-of-run summary."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Mapping

from slowlog.records import ONE_MICROSECOND, RawRecord

logger = logging.getLogger(__name__)


@dataclass
class AggregateEntry:
    """Running statistics for one fingerprint. Times are in microseconds.

    ``avg_time`` is kept with the running recurrence
    ``avg = (avg * count + t) // (count + 1)``, so it is sensitive to the
    order in which samples arrive and can differ from ``total_time // count``.
    """
    fingerprint: str
    count: int
    total_time: int
    avg_time: int
    max_time: int
    sample: RawRecord | None = None

    @classmethod
    def first(cls, fingerprint: str, query_time: int, sample: RawRecord | None = None) -> "AggregateEntry":
        return cls(
            fingerprint=fingerprint,
            count=1,
            total_time=query_time,
            avg_time=query_time,
            max_time=query_time,
            sample=sample,
        )

    def update(self, query_time: int) -> None:
        self.total_time += query_time
        self.max_time = max(self.max_time, query_time)
        new_count = self.count + 1
        self.avg_time = (self.avg_time * self.count + query_time) // new_count
        self.count = new_count


@dataclass(frozen=True)
class Summary:
    total_queries: int = 0
    unique_queries: int = 0
    avg_time: int = 0
    max_time: int = 0


def to_microseconds(duration: timedelta | int) -> int:
    if isinstance(duration, timedelta):
        return duration // ONE_MICROSECOND
    return int(duration)


class Aggregator:
    """Single-writer accumulator. Feed samples in original record order."""

    def __init__(self):
        self.entries: dict[str, AggregateEntry] = {}

    def add(self, fingerprint: str, duration: timedelta | int, sample: RawRecord | None = None) -> AggregateEntry:
        query_time = to_microseconds(duration)
        if query_time < 0:
            raise ValueError(f"negative query time for {fingerprint!r}: {query_time}us")
        entry = self.entries.get(fingerprint)
        if entry is None:
            entry = AggregateEntry.first(fingerprint, query_time, sample)
            self.entries[fingerprint] = entry
        else:
            entry.update(query_time)
        return entry

    def __len__(self) -> int:
        return len(self.entries)


def aggregate(samples: Iterable[tuple[str, timedelta | int]]) -> dict[str, AggregateEntry]:
    """Aggregate ``(fingerprint, duration)`` pairs, applied in iteration order."""
    aggregator = Aggregator()
    for fingerprint, duration in samples:
        aggregator.add(fingerprint, duration)
    logger.debug("Aggregated into %d fingerprint(s)", len(aggregator))
    return aggregator.entries


def summarize(entries: Mapping[str, AggregateEntry]) -> Summary:
    """Totals across all fingerprints; all zeros when there is nothing to summarize."""
    if not entries:
        return Summary()
    total_queries = sum(e.count for e in entries.values())
    weighted = sum(e.avg_time * e.count for e in entries.values())
    return Summary(
        total_queries=total_queries,
        unique_queries=len(entries),
        avg_time=weighted // total_queries,
        max_time=max(e.max_time for e in entries.values()),
    )
