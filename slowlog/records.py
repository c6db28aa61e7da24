"""Record types shared by the extractor, filters, normalizer and reporter."""

from dataclasses import dataclass
from datetime import datetime, timedelta

ONE_MILLISECOND = timedelta(milliseconds=1)
ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class RawRecord:
    timestamp: datetime
    user: str
    host: str
    query_time: timedelta
    lock_time: timedelta
    rows_sent: int
    rows_examined: int
    query_text: str

    @property
    def query_time_us(self) -> int:
        return self.query_time // ONE_MICROSECOND

    @property
    def query_time_ms(self) -> int:
        """Query time truncated to whole milliseconds."""
        return self.query_time // ONE_MILLISECOND


@dataclass(frozen=True)
class NormalizedRecord:
    record: RawRecord
    fingerprint: str
