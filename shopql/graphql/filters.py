"""
Filter translation.

Turns the small REST filter grammar::

    vendor = 'Nike' AND created_at >= '2024-01-01'

plus allow-listed passthrough query parameters (``vendor``,
``created_at_min``, ``since_id`` ...) into one upstream search string::

    vendor:Nike AND created_at:>=2024-01-01

Unrecognized clauses are dropped with a warning unless strict mode is on,
in which case they raise ValidationError.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from loguru import logger

from shopql.graphql.types import ResourceKind
from shopql.services.errors import ValidationError


class Operator(str, Enum):
    EQ = "="
    GTE = ">="
    LTE = "<="
    CONTAINS = "~"
    GT = ">"  # only produced by since_id

    def render(self, field_name: str, value: str) -> str:
        if self == Operator.EQ:
            return f"{field_name}:{value}"
        if self == Operator.CONTAINS:
            return f"{field_name}:*{value}*"
        return f"{field_name}:{self.value}{value}"


EXACT = frozenset({Operator.EQ})
TEXT = frozenset({Operator.EQ, Operator.CONTAINS})
RANGE = frozenset({Operator.GTE, Operator.LTE})

ALLOWED_FIELDS: dict[ResourceKind, dict[str, frozenset[Operator]]] = {
    ResourceKind.PRODUCT: {
        "vendor": TEXT,
        "product_type": TEXT,
        "status": EXACT,
        "handle": EXACT,
        "published_status": EXACT,
        "created_at": RANGE,
        "updated_at": RANGE,
        "published_at": RANGE,
    },
    ResourceKind.ORDER: {
        "financial_status": EXACT,
        "fulfillment_status": EXACT,
        "status": EXACT,
        "created_at": RANGE,
        "updated_at": RANGE,
        "processed_at": RANGE,
    },
    ResourceKind.CUSTOMER: {
        "email": TEXT,
        "phone": TEXT,
        "state": EXACT,
        "created_at": RANGE,
        "updated_at": RANGE,
    },
    ResourceKind.COLLECTION: {
        "title": TEXT,
        "handle": EXACT,
        "published": EXACT,
        "collection_type": EXACT,
        "created_at": RANGE,
        "updated_at": RANGE,
        "published_at": RANGE,
    },
}

# Passthrough parameter suffix -> operator
PASSTHROUGH_SUFFIXES: tuple[tuple[str, Operator], ...] = (
    ("", Operator.EQ),
    ("_min", Operator.GTE),
    ("_max", Operator.LTE),
)

_CLAUSE = re.compile(
    r"""\s*(?P<field>[A-Za-z_][A-Za-z0-9_]*)\s*(?P<op>>=|<=|=|~)\s*(?P<quote>['"])(?P<value>.*?)(?P=quote)\s*"""
)
_AND = re.compile(r"\s*\bAND\b\s*", re.IGNORECASE)
_NEEDS_QUOTES = re.compile(r"[\s:()\"\\]")
_POSITIVE_INT = re.compile(r"[0-9]+")

_TRUTHY = frozenset({"1", "true", "yes", "published"})


@dataclass(frozen=True)
class FilterClause:
    field: str
    op: Operator
    value: str

    def render(self) -> str:
        value = self.value
        if _NEEDS_QUOTES.search(value):
            value = '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        return self.op.render(self.field, value)


@dataclass(frozen=True)
class FilterArgs:
    """Translated filter: either an explicit id list or a list of clauses."""

    clauses: tuple[FilterClause, ...] = ()
    ids: tuple[int, ...] = ()
    dropped: tuple[str, ...] = field(default=(), compare=False)

    def to_query(self) -> str:
        if self.ids:
            return " OR ".join(f"id:{i}" for i in self.ids)
        return " AND ".join(clause.render() for clause in self.clauses)

    def __bool__(self) -> bool:
        return bool(self.ids or self.clauses)


def parse_filter(text: str | None) -> tuple[list[FilterClause], list[str]]:
    """Split filter text into well-formed clauses and unrecognized fragments."""
    clauses: list[FilterClause] = []
    rejected: list[str] = []
    text = (text or "").strip()
    pos = 0

    while pos < len(text):
        match = _CLAUSE.match(text, pos)
        if match:
            clauses.append(
                FilterClause(
                    field=match.group("field").lower(),
                    op=Operator(match.group("op")),
                    value=match.group("value"),
                )
            )
            pos = match.end()
            joiner = _AND.match(text, pos)
            if joiner:
                pos = joiner.end()
                continue
            if pos >= len(text):
                break

        # Skip to the next AND
        joiner = _AND.search(text, pos)
        end = joiner.start() if joiner else len(text)
        fragment = text[pos:end].strip()
        if fragment:
            rejected.append(fragment)
        pos = joiner.end() if joiner else len(text)

    return clauses, rejected


def normalize_value(kind: ResourceKind, field_name: str, value: Any) -> str:
    text = str(value).strip()
    if kind == ResourceKind.PRODUCT and field_name == "status":
        return text.lower()
    if kind == ResourceKind.COLLECTION and field_name == "published":
        return "true" if text.lower() in _TRUTHY else "false"
    return text


def parse_ids(ids: Iterable[Any]) -> tuple[int, ...]:
    """Validate an explicit id list; every id must be a positive integer."""
    parsed: list[int] = []
    for raw in ids:
        text = str(raw).strip()
        if isinstance(raw, bool) or not _POSITIVE_INT.fullmatch(text) or int(text) <= 0:
            raise ValidationError(f"Invalid id in id list: {raw!r}")
        if int(text) not in parsed:
            parsed.append(int(text))
    return tuple(parsed)


def translate(
    kind: ResourceKind,
    filter_text: str | None = None,
    ids: Iterable[Any] | None = None,
    passthrough: dict[str, Any] | None = None,
    strict: bool = False,
) -> FilterArgs:
    """
    Translate caller filters for ``kind``.

    An explicit id list wins and everything else is ignored. Otherwise
    filter-text clauses come first, in the order written, followed by
    passthrough parameters in allow-list order. Filter text takes
    precedence over passthrough for the same (field, operator).
    """
    id_list = list(ids or [])
    if id_list:
        return FilterArgs(ids=parse_ids(id_list))

    allowed = ALLOWED_FIELDS[kind]
    clauses: list[FilterClause] = []
    seen: set[tuple[str, Operator]] = set()

    parsed, dropped = parse_filter(filter_text)
    for clause in parsed:
        if clause.op not in allowed.get(clause.field, frozenset()):
            dropped.append(f"{clause.field} {clause.op.value} '{clause.value}'")
            continue
        key = (clause.field, clause.op)
        if key in seen:
            continue
        seen.add(key)
        clauses.append(
            FilterClause(clause.field, clause.op, normalize_value(kind, clause.field, clause.value))
        )

    if dropped:
        if strict:
            raise ValidationError(
                f"Unsupported filter clause(s) for {kind.plural}: {'; '.join(dropped)}"
            )
        logger.warning(f"Dropped unsupported filter clause(s) for {kind.plural}: {dropped}")

    params = passthrough or {}
    for field_name, ops in allowed.items():
        for suffix, op in PASSTHROUGH_SUFFIXES:
            value = params.get(f"{field_name}{suffix}")
            if op not in ops or value is None or str(value).strip() == "":
                continue
            if (field_name, op) in seen:
                continue
            seen.add((field_name, op))
            clauses.append(FilterClause(field_name, op, normalize_value(kind, field_name, value)))

    since_id = params.get("since_id")
    if since_id is not None and str(since_id).strip():
        (numeric,) = parse_ids([since_id])
        clauses.append(FilterClause("id", Operator.GT, str(numeric)))

    return FilterArgs(clauses=tuple(clauses), dropped=tuple(dropped))
