"""Sorting, top-N selection and text/JSON output for pipeline results."""

import json
from itertools import islice
from typing import Callable, Iterable

from slowlog.aggregate import AggregateEntry, Summary
from slowlog.records import ONE_MICROSECOND, NormalizedRecord

SORT_ORDERS = ("none", "count", "total_time", "avg_time", "max_time")

_ENTRY_KEYS: dict[str, Callable[[AggregateEntry], int]] = {
    "count": lambda e: e.count,
    "total_time": lambda e: e.total_time,
    "avg_time": lambda e: e.avg_time,
    "max_time": lambda e: e.max_time,
}


def _seconds(micros: int) -> float:
    return micros / 1_000_000


def sort_entries(entries: Iterable[AggregateEntry], order: str = "none") -> list[AggregateEntry]:
    """Sort descending by the given statistic; ``none`` keeps the input order."""
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order {order!r}, expected one of {', '.join(SORT_ORDERS)}")
    key = _ENTRY_KEYS.get(order)
    if key is None:
        return list(entries)
    return sorted(entries, key=key, reverse=True)


def sort_records(records: Iterable[NormalizedRecord], order: str = "none") -> list[NormalizedRecord]:
    """Per-record listing: every time-based order sorts by the record's query time."""
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order {order!r}, expected one of {', '.join(SORT_ORDERS)}")
    if order in ("none", "count"):
        return list(records)
    return sorted(records, key=lambda r: r.record.query_time, reverse=True)


def top_n(items: Iterable, limit: int | None) -> list:
    """First ``limit`` items; ``None`` or a non-positive limit keeps everything."""
    if limit is None or limit <= 0:
        return list(items)
    return list(islice(items, limit))


def format_entry_text(entry: AggregateEntry) -> str:
    return (
        f"{entry.count} queries, avg time {_seconds(entry.avg_time):.3f} seconds, "
        f"max time {_seconds(entry.max_time):.3f} seconds, "
        f"total time {_seconds(entry.total_time):.3f} seconds\n"
        f"{entry.fingerprint}\n"
    )


def format_record_text(item: NormalizedRecord) -> str:
    record = item.record
    return (
        f"Executed in {_seconds(record.query_time_us):.3f} seconds returning "
        f"{record.rows_sent} row(s) for {record.user}@{record.host}\n"
        f"{item.fingerprint}\n"
    )


def format_summary_text(summary: Summary) -> str:
    lines = [
        "Summary",
        "=======",
        f"{summary.unique_queries} unique queries ({summary.total_queries} total), "
        f"average execution time {_seconds(summary.avg_time):.3f} seconds",
        f"Execution time: average {_seconds(summary.avg_time):.3f} seconds, "
        f"maximum {_seconds(summary.max_time):.3f} seconds",
    ]
    return "\n".join(lines)


def entry_to_dict(entry: AggregateEntry) -> dict:
    return {
        "fingerprint": entry.fingerprint,
        "count": entry.count,
        "total_time_us": entry.total_time,
        "avg_time_us": entry.avg_time,
        "max_time_us": entry.max_time,
    }


def record_to_dict(item: NormalizedRecord) -> dict:
    record = item.record
    return {
        "timestamp": record.timestamp.isoformat(),
        "user": record.user,
        "host": record.host,
        "query_time_us": record.query_time_us,
        "lock_time_us": record.lock_time // ONE_MICROSECOND,
        "rows_sent": record.rows_sent,
        "rows_examined": record.rows_examined,
        "query": record.query_text,
        "fingerprint": item.fingerprint,
    }


def summary_to_dict(summary: Summary) -> dict:
    return {
        "total_queries": summary.total_queries,
        "unique_queries": summary.unique_queries,
        "avg_time_us": summary.avg_time,
        "max_time_us": summary.max_time,
    }


def format_report_text(
    summary: Summary,
    entries: Iterable[AggregateEntry] = (),
    records: Iterable[NormalizedRecord] = (),
) -> str:
    blocks = [format_entry_text(e) for e in entries]
    blocks.extend(format_record_text(r) for r in records)
    blocks.append(format_summary_text(summary))
    return "\n".join(blocks)


def format_report_json(
    summary: Summary,
    entries: Iterable[AggregateEntry] = (),
    records: Iterable[NormalizedRecord] = (),
) -> str:
    return json.dumps({
        "queries": [entry_to_dict(e) for e in entries],
        "records": [record_to_dict(r) for r in records],
        "summary": summary_to_dict(summary),
    }, indent=2)
