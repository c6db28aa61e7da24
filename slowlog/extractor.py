"""Slow-query-log record extractor.

A slow log block looks like::

    # Time: 2024-03-01T10:15:02.412345Z
    # User@Host: app[app] @ db-client-1 [10.0.0.7]  Id:    42
    # Query_time: 1.250031  Lock_time: 0.000112 Rows_sent: 1  Rows_examined: 50000
    use shop;
    SET timestamp=1709288102;
    SELECT *
      FROM orders
     WHERE customer_id = 17;

The extractor is a line-driven state machine. Anything before a ``# Time:``
line is noise and is skipped; once a block has started, the user/host and
metrics lines are mandatory and a mismatch aborts the run.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, Iterator

from slowlog.records import RawRecord

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^# Time: (\S+)")
USER_HOST_PATTERN = re.compile(
    r"^# User@Host: ([^\[\s]*)\[[^\]]*\]\s*@\s*(\S*?)\s*\[([^\]]*)\]"
)
METRICS_PATTERN = re.compile(
    r"^# Query_time: ([\d.]+)\s+Lock_time: ([\d.]+)\s+"
    r"Rows_sent: (\d+)\s+Rows_examined: (\d+)"
)
PREAMBLE_PATTERN = re.compile(r"^(use \S+|SET timestamp=\d+);\s*$", re.IGNORECASE)
WHITESPACE_RUN = re.compile(r"[ \t]{2,}|\t")

_DIGITS = frozenset("0123456789")


class FatalLogFormatError(ValueError):
    """A started block is missing a required header line."""

    def __init__(self, line_no: int, line: str, expected: str):
        self.line_no = line_no
        self.line = line
        self.expected = expected
        super().__init__(f"line {line_no}: expected {expected}, found {line!r}")


class ExtractorState(Enum):
    SEEKING_HEADER = "seeking_header"
    EXPECT_USER_HOST = "expect_user_host"
    EXPECT_METRICS = "expect_metrics"
    SKIP_PREAMBLE = "skip_preamble"
    ACCUMULATE_QUERY = "accumulate_query"


@dataclass
class _Draft:
    """Fields collected so far for the block being read."""
    start_line: int
    timestamp: datetime
    user: str = ""
    host: str = ""
    query_time: timedelta = timedelta(0)
    lock_time: timedelta = timedelta(0)
    rows_sent: int = 0
    rows_examined: int = 0
    query: str | None = None


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing ``Z`` means UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def seconds_to_duration(value: str) -> timedelta:
    """Convert a decimal seconds string to a timedelta without float rounding."""
    micros = int(Decimal(value) * 1_000_000)
    return timedelta(microseconds=micros)


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RUN.sub(" ", text).strip()


class SlowLogExtractor:
    """Feed lines one at a time; completed records come back from ``feed``."""

    def __init__(self):
        self.state = ExtractorState.SEEKING_HEADER
        self._draft: _Draft | None = None
        self._line_no = 0
        self._transitions = {
            ExtractorState.SEEKING_HEADER: self._seek_header,
            ExtractorState.EXPECT_USER_HOST: self._expect_user_host,
            ExtractorState.EXPECT_METRICS: self._expect_metrics,
            ExtractorState.SKIP_PREAMBLE: self._skip_preamble,
            ExtractorState.ACCUMULATE_QUERY: self._accumulate_query,
        }

    def feed(self, line: str) -> RawRecord | None:
        self._line_no += 1
        return self._transitions[self.state](line.rstrip("\r\n"))

    def finish(self) -> None:
        """Signal end of input. A block still in progress is dropped."""
        if self._draft is not None:
            logger.warning(
                "Input ended inside the block starting at line %d; discarding it",
                self._draft.start_line,
            )
        self._draft = None
        self.state = ExtractorState.SEEKING_HEADER

    def _fail(self, line: str, expected: str) -> FatalLogFormatError:
        return FatalLogFormatError(self._line_no, line, expected)

    def _seek_header(self, line: str) -> None:
        match = TIME_PATTERN.match(line)
        if not match:
            return None
        try:
            timestamp = parse_timestamp(match.group(1))
        except ValueError:
            raise self._fail(line, "an ISO-8601 timestamp") from None
        self._draft = _Draft(start_line=self._line_no, timestamp=timestamp)
        self.state = ExtractorState.EXPECT_USER_HOST
        return None

    def _expect_user_host(self, line: str) -> None:
        match = USER_HOST_PATTERN.match(line)
        if not match:
            raise self._fail(line, "a '# User@Host:' line")
        user, host_name, host_ip = match.groups()
        self._draft.user = user
        self._draft.host = host_name or host_ip
        self.state = ExtractorState.EXPECT_METRICS
        return None

    def _expect_metrics(self, line: str) -> None:
        match = METRICS_PATTERN.match(line)
        if not match:
            raise self._fail(line, "a '# Query_time:' line")
        query_time, lock_time, rows_sent, rows_examined = match.groups()
        try:
            self._draft.query_time = seconds_to_duration(query_time)
            self._draft.lock_time = seconds_to_duration(lock_time)
        except InvalidOperation:
            raise self._fail(line, "decimal Query_time and Lock_time values") from None
        self._draft.rows_sent = int(rows_sent)
        self._draft.rows_examined = int(rows_examined)
        self.state = ExtractorState.SKIP_PREAMBLE
        return None

    def _skip_preamble(self, line: str) -> RawRecord | None:
        if not line.strip() or PREAMBLE_PATTERN.match(line):
            return None
        return self._accumulate_query(line)

    def _accumulate_query(self, line: str) -> RawRecord | None:
        draft = self._draft
        if draft.query is None:
            draft.query = line
        elif draft.query[-1:] in _DIGITS and line[:1] in _DIGITS:
            # a number wrapped across two lines
            draft.query += line
        else:
            draft.query += " " + line

        if not line.rstrip().endswith(";"):
            self.state = ExtractorState.ACCUMULATE_QUERY
            return None
        return self._emit()

    def _emit(self) -> RawRecord:
        draft = self._draft
        record = RawRecord(
            timestamp=draft.timestamp,
            user=draft.user,
            host=draft.host,
            query_time=draft.query_time,
            lock_time=draft.lock_time,
            rows_sent=draft.rows_sent,
            rows_examined=draft.rows_examined,
            query_text=collapse_whitespace(draft.query),
        )
        self._draft = None
        self.state = ExtractorState.SEEKING_HEADER
        return record


def iter_records(lines: Iterable[str]) -> Iterator[RawRecord]:
    """Lazily yield records in input order."""
    extractor = SlowLogExtractor()
    for line in lines:
        record = extractor.feed(line)
        if record is not None:
            yield record
    extractor.finish()


def extract(stream) -> list[RawRecord]:
    """Extract every record from a line iterable (or a whole string).

    The full list is built before returning so a FatalLogFormatError leaves
    the caller with nothing rather than a prefix of the log.
    """
    if isinstance(stream, str):
        stream = stream.splitlines()
    records = list(iter_records(stream))
    logger.info("Extracted %d record(s)", len(records))
    return records
