"""Extract → filter → normalize → aggregate."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Iterable, Sequence

from slowlog.aggregate import AggregateEntry, Aggregator, Summary, summarize
from slowlog.extractor import extract
from slowlog.filters import Filter, apply_filters
from slowlog.normalizer import DEFAULT_DIALECT, normalize_record
from slowlog.records import NormalizedRecord, RawRecord

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    entries: dict[str, AggregateEntry] = field(default_factory=dict)
    records: list[NormalizedRecord] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)
    extracted: int = 0


def _as_is(record: RawRecord) -> NormalizedRecord:
    return NormalizedRecord(record=record, fingerprint=record.query_text)


def fingerprint_records(
    records: Sequence[RawRecord],
    normalize: bool = True,
    workers: int = 1,
    dialect: str = DEFAULT_DIALECT,
) -> list[NormalizedRecord]:
    """Fingerprint records, keeping input order regardless of worker count."""
    fn = partial(normalize_record, dialect=dialect) if normalize else _as_is
    if workers <= 1 or len(records) < 2:
        return [fn(r) for r in records]
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="slowlog-normalize") as pool:
        # Executor.map yields results in submission order
        return list(pool.map(fn, records))


def run_pipeline(
    lines: Iterable[str],
    filters: Sequence[Filter] = (),
    aggregate: bool = True,
    normalize: bool = True,
    workers: int = 1,
    dialect: str = DEFAULT_DIALECT,
) -> PipelineResult:
    """Run one batch over a complete log.

    Aggregation always happens so a summary is available; individual records
    are only kept when ``aggregate`` is False and the caller wants them listed.
    """
    records = extract(lines)
    kept = list(apply_filters(records, filters))
    logger.info("%d of %d record(s) passed %d filter(s)", len(kept), len(records), len(filters))

    normalized = fingerprint_records(kept, normalize=normalize, workers=workers, dialect=dialect)

    aggregator = Aggregator()
    for item in normalized:
        aggregator.add(item.fingerprint, item.record.query_time, sample=item.record)

    return PipelineResult(
        entries=aggregator.entries,
        records=[] if aggregate else normalized,
        summary=summarize(aggregator.entries),
        extracted=len(records),
    )
