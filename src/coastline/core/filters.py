"""
Backend-neutral select options and the filter expression tree.

Callers describe what they want with an untyped mapping::

    {"status": "active", "service_type": ["homestay", "driver"],
     "price": {"gte": 1000, "lt": 5000}, "deleted_at": None}

``parse_where`` validates that mapping once, at the boundary, into a
``Filter`` of typed ``Predicate`` values.  Both adapters translate the
same tree, so a filter means the same thing on either backend.

Grammar:
    - scalar            → equality (``eq``)
    - list/tuple/set    → membership (``in``)
    - ``{op: value}``   → each operator applied conjunctively
    - ``None``          → ``IS NULL``

Operators are a closed set: ``eq``, ``in``, ``gt``, ``gte``, ``lt``,
``lte``.  Anything else is a ``TranslationError``.

Tags:
    coastline, filters, query-translation, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from coastline.core.errors import TranslationError

DEFAULT_PAGE_SIZE = 100

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SEQUENCE_TYPES = (list, tuple, set, frozenset)


class Operator(str, Enum):
    """Comparison operators accepted in a ``where`` mapping."""

    EQ = "eq"
    IN = "in"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


@dataclass(frozen=True, slots=True)
class Predicate:
    """One ``column <op> value`` test."""

    column: str
    op: Operator
    value: Any

    @property
    def is_null_test(self) -> bool:
        return self.op is Operator.EQ and self.value is None


@dataclass(frozen=True, slots=True)
class Filter:
    """Conjunction of predicates.  An empty filter matches every row."""

    predicates: tuple[Predicate, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.predicates)

    def __iter__(self) -> Iterator[Predicate]:
        return iter(self.predicates)

    def __len__(self) -> int:
        return len(self.predicates)


@dataclass(frozen=True, slots=True)
class OrderTerm:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class SelectOptions:
    """
    Backend-neutral description of a read.

    Attributes:
        select: ``"*"`` or comma-separated column names.
        where: Untyped filter mapping (see module docstring).
        order_by: ``"column [asc|desc]"``, several terms comma separated.
        limit: Maximum rows to return.
        offset: Rows to skip; without ``limit`` the page size is
            ``DEFAULT_PAGE_SIZE``.
        join: Related resources to embed (platform only).
        count: Report the total match count, ignoring pagination.
    """

    select: str = "*"
    where: Mapping[str, Any] | None = None
    order_by: str | None = None
    limit: int | None = None
    offset: int | None = None
    join: tuple[str, ...] = ()
    count: bool = False

    def page(self) -> tuple[int, int] | None:
        """Return ``(limit, offset)`` after defaults, or ``None`` when unpaged."""
        if self.limit is None and self.offset is None:
            return None
        limit = self.limit if self.limit is not None else DEFAULT_PAGE_SIZE
        offset = self.offset or 0
        if limit < 0 or offset < 0:
            raise TranslationError(f"limit/offset must be non-negative, got limit={limit} offset={offset}")
        return limit, offset


def validate_identifier(name: str, kind: str = "column") -> str:
    """Reject anything that is not a plain SQL identifier."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise TranslationError(f"Invalid {kind} name: {name!r}")
    return name


def parse_columns(select: str) -> tuple[str, ...] | None:
    """Parse a projection.  ``None`` means all columns."""
    text = (select or "*").strip()
    if text == "*":
        return None
    columns = tuple(part.strip() for part in text.split(","))
    if not all(columns):
        raise TranslationError(f"Empty column in projection: {select!r}")
    return tuple(validate_identifier(c) for c in columns)


def _parse_operator_map(column: str, ops: Mapping[str, Any]) -> list[Predicate]:
    if not ops:
        raise TranslationError(f"Empty operator map for column {column!r}")
    predicates = []
    for raw_op, value in ops.items():
        try:
            op = Operator(raw_op)
        except ValueError:
            raise TranslationError(f"Unknown operator {raw_op!r} for column {column!r}") from None
        if op is Operator.IN:
            if not isinstance(value, _SEQUENCE_TYPES):
                raise TranslationError(f"Operator 'in' on {column!r} needs a list, got {type(value).__name__}")
            value = tuple(value)
        elif isinstance(value, _SEQUENCE_TYPES):
            raise TranslationError(f"Operator {raw_op!r} on {column!r} needs a scalar")
        elif value is None and op is not Operator.EQ:
            raise TranslationError(f"Operator {raw_op!r} on {column!r} cannot compare with null")
        predicates.append(Predicate(column, op, value))
    return predicates


def parse_where(where: Mapping[str, Any] | None) -> Filter:
    """Validate an untyped ``where`` mapping into a ``Filter``."""
    if not where:
        return Filter()
    if not isinstance(where, Mapping):
        raise TranslationError(f"where must be a mapping, got {type(where).__name__}")

    predicates: list[Predicate] = []
    for column, value in where.items():
        validate_identifier(column)
        if isinstance(value, Mapping):
            predicates.extend(_parse_operator_map(column, value))
        elif isinstance(value, _SEQUENCE_TYPES):
            predicates.append(Predicate(column, Operator.IN, tuple(value)))
        else:
            predicates.append(Predicate(column, Operator.EQ, value))
    return Filter(tuple(predicates))


def parse_order_by(order_by: str | None) -> tuple[OrderTerm, ...]:
    """Parse ``"a desc, b"`` into order terms (ascending by default)."""
    if not order_by or not order_by.strip():
        return ()
    terms = []
    for part in order_by.split(","):
        tokens = part.split()
        if not tokens or len(tokens) > 2:
            raise TranslationError(f"Invalid order_by term: {part.strip()!r}")
        column = validate_identifier(tokens[0])
        direction = tokens[1].lower() if len(tokens) == 2 else "asc"
        if direction not in ("asc", "desc"):
            raise TranslationError(f"Invalid order direction {tokens[1]!r} for column {column!r}")
        terms.append(OrderTerm(column, descending=direction == "desc"))
    return tuple(terms)


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Operator",
    "Predicate",
    "Filter",
    "OrderTerm",
    "SelectOptions",
    "validate_identifier",
    "parse_columns",
    "parse_where",
    "parse_order_by",
]
