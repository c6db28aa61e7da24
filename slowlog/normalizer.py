"""SQL fingerprinting: erase literal values so equivalent queries group together.

Statements are parsed with sqlglot and rewritten through an explicit dispatch
table keyed on sqlglot expression classes. A node whose class (or nearest
base class) is not in the table is returned untouched, so unfamiliar syntax
is never over-normalized.
"""

import logging
from typing import Callable

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError

from slowlog.records import NormalizedRecord, RawRecord

logger = logging.getLogger(__name__)

DEFAULT_DIALECT = "mysql"
UNPARSEABLE_PREFIX = "Unparseable statement"

_TEMPORAL_SENTINELS = {
    exp.DataType.Type.DATE: "1970-01-01",
    exp.DataType.Type.TIME: "00:00:00",
    exp.DataType.Type.DATETIME: "1970-01-01 00:00:00",
    exp.DataType.Type.TIMESTAMP: "1970-01-01 00:00:00",
    exp.DataType.Type.TIMESTAMPTZ: "1970-01-01 00:00:00",
}

Handler = Callable[[exp.Expression], exp.Expression]


def _rewrite(node: exp.Expression) -> exp.Expression:
    for cls in type(node).__mro__:
        handler = _HANDLERS.get(cls)
        if handler is not None:
            return handler(node)
    return node


def _recurse(node: exp.Expression, *keys: str) -> exp.Expression:
    for key in keys:
        child = node.args.get(key)
        if isinstance(child, list):
            node.set(key, [_rewrite(c) if isinstance(c, exp.Expression) else c for c in child])
        elif isinstance(child, exp.Expression):
            node.set(key, _rewrite(child))
    return node


def _descend(*keys: str) -> Handler:
    return lambda node: _recurse(node, *keys)


def _literal(node: exp.Literal) -> exp.Expression:
    if node.is_string:
        return exp.Literal.string("")
    return exp.Literal.number(0)


def _boolean(node: exp.Boolean) -> exp.Expression:
    return exp.Boolean(this=True)


def _national(node: exp.National) -> exp.Expression:
    return exp.National(this="")


def _empty_string(node: exp.Expression) -> exp.Expression:
    return exp.Literal.string("")


def _interval(node: exp.Interval) -> exp.Expression:
    return exp.Interval(this=exp.Literal.string("1"), unit=exp.var("SECOND"))


def _keep(node: exp.Expression) -> exp.Expression:
    return node


def _in_list(node: exp.In) -> exp.Expression:
    # list cardinality is deliberately not part of the fingerprint
    _recurse(node, "this", "query")
    items = node.args.get("expressions") or []
    node.set("expressions", [_rewrite(items[0])] if items else [])
    return node


def _cast(node: exp.Cast) -> exp.Expression:
    to = node.args.get("to")
    inner = node.this
    if (
        isinstance(to, exp.DataType)
        and to.this in _TEMPORAL_SENTINELS
        and isinstance(inner, exp.Literal)
        and inner.is_string
    ):
        node.set("this", exp.Literal.string(_TEMPORAL_SENTINELS[to.this]))
        return node
    return _recurse(node, "this")


_HANDLERS: dict[type, Handler] = {
    # literal values
    exp.Literal: _literal,
    exp.Boolean: _boolean,
    exp.National: _national,
    exp.HexString: _empty_string,
    exp.BitString: _empty_string,
    exp.Interval: _interval,
    exp.Null: _keep,
    # predicates and operators
    exp.In: _in_list,
    exp.Cast: _cast,
    exp.Collate: _descend("this"),
    exp.Binary: _descend("this", "expression"),
    exp.Unary: _descend("this"),
    exp.Between: _descend("this", "low", "high"),
    exp.Case: _descend("this", "ifs", "default"),
    exp.If: _descend("this", "true", "false"),
    exp.Extract: _descend("this", "expression"),
    exp.Exists: _descend("this"),
    exp.Alias: _descend("this"),
    exp.Tuple: _descend("expressions"),
    # queries
    exp.Subquery: _descend("this", "joins"),
    exp.Select: _descend(
        "with", "with_", "expressions", "distinct", "from", "from_",
        "joins", "where", "group", "having", "qualify",
    ),
    exp.Distinct: _descend("on"),
    exp.Union: _descend("with", "with_", "this", "expression"),
    exp.Intersect: _descend("with", "with_", "this", "expression"),
    exp.Except: _descend("with", "with_", "this", "expression"),
    exp.With: _descend("expressions"),
    exp.CTE: _descend("this"),
    exp.From: _descend("this", "expressions"),
    exp.Table: _descend("joins"),
    exp.Join: _descend("this", "on"),
    exp.Where: _descend("this"),
    exp.Having: _descend("this"),
    exp.Qualify: _descend("this"),
    exp.Group: _descend("expressions"),
    # data modification
    exp.Insert: _descend("with", "with_", "expression", "conflict"),
    exp.OnConflict: _descend("expressions"),
    exp.Values: _descend("expressions"),
    exp.Update: _descend("with", "with_", "this", "expressions", "from", "from_", "joins", "where"),
    exp.Delete: _descend("with", "with_", "using", "where"),
}


def unparseable_fingerprint(text: str, error: Exception | str) -> str:
    return f"{UNPARSEABLE_PREFIX}: {text} ({error})"


def normalize_sql(text: str, dialect: str = DEFAULT_DIALECT) -> str:
    """Return the fingerprint for a piece of SQL text."""
    try:
        statements = sqlglot.parse(text, read=dialect)
    except (ParseError, TokenError) as e:
        logger.debug("Could not parse %r: %s", text, e)
        return unparseable_fingerprint(text, e)

    rendered = [
        _rewrite(statement).sql(dialect=dialect) + ";"
        for statement in statements
        if statement is not None
    ]
    if not rendered:
        return unparseable_fingerprint(text, "empty statement")
    return " ".join(rendered)


def normalize(record: RawRecord | str, dialect: str = DEFAULT_DIALECT) -> str:
    """Fingerprint a record (or raw SQL text)."""
    text = record.query_text if isinstance(record, RawRecord) else record
    return normalize_sql(text, dialect=dialect)


def normalize_record(record: RawRecord, dialect: str = DEFAULT_DIALECT) -> NormalizedRecord:
    return NormalizedRecord(record=record, fingerprint=normalize_sql(record.query_text, dialect))
