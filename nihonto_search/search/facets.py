"""
Nihonto Search — Facet Aggregation

Cross-filtered facet counts: each dimension is counted over the compiled
predicate set minus that dimension's own predicates, so selecting a value
never collapses its own facet to a singleton.

Counts cover the whole matching set. The store is read in id-ordered pages
of FACET_PAGE_SIZE until exhausted, bounded by FACET_MAX_ROWS.

Item-type predicates (category expansion, explicit or extracted types) are
not pushed to the store for the other facets. They are tested per row in
application code against the lowercased, fuchi_kashira-folded item_type.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from typing import Any, NamedTuple, Protocol

import structlog

from nihonto_search.config import settings
from nihonto_search.search.cache import NullCache
from nihonto_search.search.predicates import Dimension, Predicate, PredicateSet, evaluate
from nihonto_search.search.vocabulary import (
    HISTORICAL_PERIOD_ORDER,
    SignatureStatus,
    fold_certification,
    normalize_item_type,
)

logger = structlog.get_logger(__name__)


class FacetCount(NamedTuple):
    value: str
    count: int


class DealerFacetCount(NamedTuple):
    id: int
    name: str
    count: int


class Facets(NamedTuple):
    item_types: list[FacetCount]
    certifications: list[FacetCount]
    dealers: list[DealerFacetCount]
    historical_periods: list[FacetCount]
    signature_statuses: list[FacetCount]

    @classmethod
    def empty(cls) -> Facets:
        return cls([], [], [], [], [])

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "itemTypes": [c._asdict() for c in self.item_types],
            "certifications": [c._asdict() for c in self.certifications],
            "dealers": [c._asdict() for c in self.dealers],
            "historicalPeriods": [c._asdict() for c in self.historical_periods],
            "signatureStatuses": [c._asdict() for c in self.signature_statuses],
        }


class FacetSource(Protocol):
    """Row access the aggregator needs from the execution adapter."""

    async def fetch_rows(
        self,
        predicates: PredicateSet,
        columns: list[str],
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        ...

    async def dealer_names(self, dealer_ids: list[int]) -> dict[int, str]:
        ...


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def _by_count(counts: Counter) -> list[FacetCount]:
    ordered = sorted(counts.items(), key=lambda item: (-item[1], str(item[0])))
    return [FacetCount(value=value, count=count) for value, count in ordered]


def _by_period(counts: Counter) -> list[FacetCount]:
    """Chronological; unknown period names follow by count."""
    rank = {period: index for index, period in enumerate(HISTORICAL_PERIOD_ORDER)}
    known = sorted((v for v in counts if v in rank), key=rank.__getitem__)
    unknown = [fc.value for fc in _by_count(Counter({v: c for v, c in counts.items() if v not in rank}))]
    return [FacetCount(value=v, count=counts[v]) for v in known + unknown]


def _by_signature(counts: Counter) -> list[FacetCount]:
    """Signed first, then unsigned, then anything else by count."""
    order = [SignatureStatus.SIGNED.value, SignatureStatus.UNSIGNED.value]
    head = [FacetCount(value=v, count=counts[v]) for v in order if v in counts]
    rest = _by_count(Counter({v: c for v, c in counts.items() if v not in order}))
    return head + rest


# ---------------------------------------------------------------------------
# Dimension table
# ---------------------------------------------------------------------------

class _FacetSpec(NamedTuple):
    dimension: Dimension
    column: str
    fold: Callable[[Any], Any]
    order: Callable[[Counter], list]


def _fold_cert(raw: Any) -> str | None:
    if raw is None or raw == "null":
        return None
    return fold_certification(str(raw))


def _fold_text(raw: Any) -> str | None:
    return raw if raw else None


_FACET_SPECS: dict[str, _FacetSpec] = {
    "item_types": _FacetSpec(Dimension.ITEM_TYPE, "item_type", normalize_item_type, _by_count),
    "certifications": _FacetSpec(Dimension.CERTIFICATION, "cert_type", _fold_cert, _by_count),
    "dealers": _FacetSpec(Dimension.DEALER, "dealer_id", lambda v: v, _by_count),
    "historical_periods": _FacetSpec(Dimension.PERIOD, "historical_period", _fold_text, _by_period),
    "signature_statuses": _FacetSpec(Dimension.SIGNATURE, "signature_status", _fold_text, _by_signature),
}


def facet_predicates(predicates: PredicateSet, dimension: Dimension) -> PredicateSet:
    """The predicate set a facet is counted against: everything but its own dimension."""
    return predicates.without(dimension)


def _row_matches_types(row: dict[str, Any], type_predicates: list[Predicate]) -> bool:
    if not type_predicates:
        return True
    folded = {**row, "item_type": normalize_item_type(row.get("item_type"))}
    return all(evaluate(p, row) or evaluate(p, folded) for p in type_predicates)


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class FacetAggregator:
    """
    Computes all five facets for a compiled predicate set.

    Usage:
        aggregator = FacetAggregator(store, cache=TTLCache(300))
        facets = await aggregator.aggregate(compiled.predicates)
    """

    def __init__(
        self,
        source: FacetSource,
        cache=None,
        page_size: int | None = None,
        max_rows: int | None = None,
    ):
        self._source = source
        self._cache = cache if cache is not None else NullCache()
        self._page_size = page_size or settings.FACET_PAGE_SIZE
        self._max_rows = max_rows or settings.FACET_MAX_ROWS

    async def _count(self, predicates: PredicateSet, spec: _FacetSpec) -> Counter:
        pushed = predicates.without(Dimension.ITEM_TYPE)
        type_predicates = predicates.for_dimension(Dimension.ITEM_TYPE)
        columns = list(dict.fromkeys(["id", "item_type", spec.column]))

        counts: Counter = Counter()
        offset = 0
        while offset < self._max_rows:
            limit = min(self._page_size, self._max_rows - offset)
            rows = await self._source.fetch_rows(pushed, columns, offset, limit)
            for row in rows:
                if not _row_matches_types(row, type_predicates):
                    continue
                value = spec.fold(row.get(spec.column))
                if value is not None:
                    counts[value] += 1
            if len(rows) < limit:
                break
            offset += len(rows)
        else:
            logger.warning(
                "facet_row_ceiling_reached",
                dimension=spec.dimension.value,
                max_rows=self._max_rows,
                source="facets",
            )
        return counts

    async def _facet(self, name: str, predicates: PredicateSet) -> list:
        spec = _FACET_SPECS[name]
        counts = await self._count(facet_predicates(predicates, spec.dimension), spec)
        if name != "dealers":
            return spec.order(counts)

        names = await self._source.dealer_names(list(counts)) if counts else {}
        return [
            DealerFacetCount(id=fc.value, name=names.get(fc.value, f"Dealer {fc.value}"), count=fc.count)
            for fc in spec.order(counts)
        ]

    async def _aggregate(self, predicates: PredicateSet) -> Facets:
        results = await asyncio.gather(
            *(self._facet(name, predicates) for name in _FACET_SPECS)
        )
        return Facets(*results)

    async def aggregate(self, predicates: PredicateSet) -> Facets:
        facets = await self._cache.get_or_compute(
            ("facets", predicates.signature()),
            lambda: self._aggregate(predicates),
        )
        logger.debug(
            "facets_aggregated",
            item_types=len(facets.item_types),
            certifications=len(facets.certifications),
            dealers=len(facets.dealers),
            source="facets",
        )
        return facets
