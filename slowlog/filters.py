"""Record filters — user, query text, query time, negation.

Filters are frozen dataclasses exposing ``matches(record)``. Regex-based
filters compile their pattern once at construction, so building a filter
with a bad pattern fails before any log line is read.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Iterable, Iterator, Sequence

from slowlog.records import RawRecord

logger = logging.getLogger(__name__)

FILTER_EXPRESSION = re.compile(r"^(?P<name>\w+)\s*(?P<op>[=<>!~]+)\s*(?P<value>.+)$")


class FilterError(ValueError):
    """Base class for filter construction failures."""


class InvalidFilterExpression(FilterError):
    pass


class InvalidFilterName(FilterError):
    pass


class InvalidFilterOperator(FilterError):
    pass


class InvalidPattern(FilterError):
    pass


class InvalidFilterValue(FilterError):
    pass


class Filter(ABC):
    """Predicate over a single RawRecord."""

    @abstractmethod
    def matches(self, record: RawRecord) -> bool:
        ...


def _compile(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidPattern(f"Invalid regular expression: {pattern!r} ({e})") from e


@dataclass(frozen=True)
class UserEquals(Filter):
    name: str

    def matches(self, record: RawRecord) -> bool:
        return record.user == self.name


@dataclass(frozen=True)
class UserMatches(Filter):
    pattern: str
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_regex", _compile(self.pattern))

    def matches(self, record: RawRecord) -> bool:
        return self._regex.search(record.user) is not None


@dataclass(frozen=True)
class QueryMatches(Filter):
    pattern: str
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_regex", _compile(self.pattern))

    def matches(self, record: RawRecord) -> bool:
        return self._regex.search(record.query_text) is not None


@dataclass(frozen=True)
class QueryTimeGreaterThan(Filter):
    """Inclusive: keeps records whose whole-millisecond time is >= threshold."""
    threshold_ms: int

    def matches(self, record: RawRecord) -> bool:
        return record.query_time_ms >= self.threshold_ms


@dataclass(frozen=True)
class QueryTimeLessThan(Filter):
    """Inclusive: keeps records whose whole-millisecond time is <= threshold."""
    threshold_ms: int

    def matches(self, record: RawRecord) -> bool:
        return record.query_time_ms <= self.threshold_ms


@dataclass(frozen=True)
class Not(Filter):
    inner: Filter

    def matches(self, record: RawRecord) -> bool:
        return not self.inner.matches(record)


def _parse_millis(value: str) -> int:
    try:
        millis = Decimal(value.strip())
    except InvalidOperation:
        raise InvalidFilterValue(
            f"Query time filter requires a numeric argument, found {value!r}"
        ) from None
    if not millis.is_finite():
        raise InvalidFilterValue(f"Query time filter requires a finite number, found {value!r}")
    return int(millis)


def compile_filter(name: str, operator: str, value: str) -> Filter:
    """Build a filter from its three parts.

    ``query_time`` thresholds are given in milliseconds.
    """
    if name == "user":
        if operator == "=":
            return UserEquals(value)
        if operator == "!=":
            return Not(UserEquals(value))
        if operator == "~=":
            return UserMatches(value)
        raise InvalidFilterOperator(
            f"User filter expects one of '=', '!=' or '~=', found {operator!r}"
        )

    if name == "query":
        if operator == "~=":
            return QueryMatches(value)
        raise InvalidFilterOperator(f"Query filter only supports '~=', found {operator!r}")

    if name == "query_time":
        if operator in ("<", "<="):
            return QueryTimeLessThan(_parse_millis(value))
        if operator in (">", ">="):
            return QueryTimeGreaterThan(_parse_millis(value))
        raise InvalidFilterOperator(
            f"Query time filter expects one of '<', '<=', '>' or '>=', found {operator!r}"
        )

    raise InvalidFilterName(f"Unknown filter name: {name!r}")


def parse_filter(expression: str) -> Filter:
    """Parse a ``name<op>value`` expression such as ``user!=root``."""
    match = FILTER_EXPRESSION.match(expression.strip())
    if not match:
        raise InvalidFilterExpression(f"Invalid filter format: {expression!r}")
    return compile_filter(match.group("name"), match.group("op"), match.group("value"))


def build_filters(expressions: Iterable[str]) -> list[Filter]:
    filters = [parse_filter(expr) for expr in expressions]
    if filters:
        logger.info("Built %d filter(s): %s", len(filters), filters)
    return filters


def matches_all(record: RawRecord, filters: Sequence[Filter]) -> bool:
    """True if every filter matches. An empty filter list keeps everything."""
    return all(f.matches(record) for f in filters)


def apply_filters(records: Iterable[RawRecord], filters: Sequence[Filter]) -> Iterator[RawRecord]:
    return (r for r in records if matches_all(r, filters))
