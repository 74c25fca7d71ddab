"""
Nihonto Search — Predicate Set

Engine-neutral, immutable filter representation produced by the compiler
and translated by an execution adapter:

    Eq        field = value
    InSet     field IN values (optionally case-insensitive)
    Substring field ILIKE %value%
    Range     field <op> value
    IsNull    field IS NULL
    FullText  search_vector @@ tsquery
    AnyOf     OR of children
    AllOf     AND of children
    Not       NOT child

Each predicate is tagged with the Dimension it came from. Facets drop the
predicates of their own dimension with PredicateSet.without().

Every predicate type ends with a `kind` field, so two predicates of different
kinds never compare equal even when their other fields do.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, NamedTuple, Union

from nihonto_search.search.numeric_filters import ComparisonOp


class Dimension(str, Enum):
    """Origin of a predicate. Facet dimensions exclude their own tag."""
    URL = "url"
    STATUS = "status"
    DELAY = "delay"
    MIN_PRICE = "min_price"
    COLLECTIBLE = "collectible"
    ADMIN_HIDDEN = "admin_hidden"
    ITEM_TYPE = "item_type"
    ASK = "ask"
    PRICE_RANGE = "price_range"
    CERTIFICATION = "certification"
    SCHOOL = "school"
    DEALER = "dealer"
    PERIOD = "period"
    SIGNATURE = "signature"
    ARTISAN = "artisan"
    PROVINCE = "province"
    NUMERIC = "numeric"
    TEXT = "text"


class Eq(NamedTuple):
    field: str
    value: Any
    kind: str = "eq"


class InSet(NamedTuple):
    field: str
    values: tuple
    case_insensitive: bool = False
    kind: str = "in"


class Substring(NamedTuple):
    field: str
    value: str
    kind: str = "substring"


class Range(NamedTuple):
    field: str
    op: ComparisonOp
    value: Decimal | int | datetime
    kind: str = "range"


class IsNull(NamedTuple):
    field: str
    kind: str = "is_null"


class FullText(NamedTuple):
    """
    Full-text match. `terms` and `fields` describe an equivalent AND of
    per-term substring matches for engines without a text index.
    """
    tsquery: str
    terms: tuple[str, ...]
    fields: tuple[str, ...]
    kind: str = "fts"


class AnyOf(NamedTuple):
    children: tuple
    kind: str = "any"


class AllOf(NamedTuple):
    children: tuple
    kind: str = "all"


class Not(NamedTuple):
    child: Any
    kind: str = "not"


Predicate = Union[Eq, InSet, Substring, Range, IsNull, FullText, AnyOf, AllOf, Not]


class TaggedPredicate(NamedTuple):
    dimension: Dimension
    predicate: Predicate


class PredicateSet(NamedTuple):
    """Ordered, immutable conjunction of tagged predicates."""
    entries: tuple[TaggedPredicate, ...] = ()

    def add(self, dimension: Dimension, predicate: Predicate) -> PredicateSet:
        return PredicateSet(self.entries + (TaggedPredicate(dimension, predicate),))

    def without(self, *dimensions: Dimension) -> PredicateSet:
        return PredicateSet(tuple(e for e in self.entries if e.dimension not in dimensions))

    def has(self, dimension: Dimension) -> bool:
        return any(e.dimension == dimension for e in self.entries)

    def for_dimension(self, dimension: Dimension) -> list[Predicate]:
        return [e.predicate for e in self.entries if e.dimension == dimension]

    def predicates(self) -> list[Predicate]:
        return [e.predicate for e in self.entries]

    def dimensions(self) -> list[Dimension]:
        return list(dict.fromkeys(e.dimension for e in self.entries))

    def signature(self) -> str:
        """Stable string key identifying this exact filter combination."""
        return repr(self.entries)


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def any_of(*children: Predicate) -> Predicate:
    """OR of children, collapsing the single-child case."""
    if len(children) == 1:
        return children[0]
    return AnyOf(tuple(children))


def all_of(*children: Predicate) -> Predicate:
    if len(children) == 1:
        return children[0]
    return AllOf(tuple(children))


def substring_any(fields: tuple[str, ...] | list[str], values: list[str]) -> Predicate:
    """OR of `field ILIKE %value%` over every field × value pair."""
    return any_of(*(Substring(field, value) for value in values for field in fields))


# ---------------------------------------------------------------------------
# In-memory evaluation
# ---------------------------------------------------------------------------

def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _compare(left: Any, op: ComparisonOp, right: Any) -> bool:
    if left is None:
        return False
    if isinstance(right, Decimal) and not isinstance(left, Decimal):
        left = Decimal(str(left))
    if op == ComparisonOp.GT:
        return left > right
    if op == ComparisonOp.GTE:
        return left >= right
    if op == ComparisonOp.LT:
        return left < right
    return left <= right


def evaluate(predicate: Predicate, row: Mapping[str, Any]) -> bool:
    """
    Evaluate a predicate against a row mapping with SQL null semantics
    collapsed to False.

    Raises:
        ValueError: For FullText, which needs a text index.
    """
    kind = predicate.kind
    if kind == "eq":
        return row.get(predicate.field) == predicate.value
    if kind == "in":
        value = row.get(predicate.field)
        if value is None:
            return False
        if predicate.case_insensitive:
            return _lower(value) in {_lower(v) for v in predicate.values}
        return value in predicate.values
    if kind == "substring":
        value = row.get(predicate.field)
        return value is not None and predicate.value.lower() in str(value).lower()
    if kind == "range":
        return _compare(row.get(predicate.field), predicate.op, predicate.value)
    if kind == "is_null":
        return row.get(predicate.field) is None
    if kind == "any":
        return any(evaluate(child, row) for child in predicate.children)
    if kind == "all":
        return all(evaluate(child, row) for child in predicate.children)
    if kind == "not":
        return not evaluate(predicate.child, row)
    raise ValueError(f"Cannot evaluate {kind} predicate in memory")
