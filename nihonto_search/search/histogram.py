"""
Nihonto Search — Price Histogram

Counts of priced listings per JPY bucket for the price slider. Computed over
the compiled predicate set without the caller's own price range, so the
slider always shows the full distribution it can narrow.

Bucket i covers [boundaries[i], boundaries[i+1]); the last is open-ended.
"""

from __future__ import annotations

from bisect import bisect_right
from decimal import Decimal
from typing import Any, NamedTuple

import structlog

from nihonto_search.config import settings
from nihonto_search.search.facets import FacetSource
from nihonto_search.search.predicates import Dimension, IsNull, Not, PredicateSet

logger = structlog.get_logger(__name__)


class HistogramBucket(NamedTuple):
    idx: int
    count: int


class PriceHistogram(NamedTuple):
    buckets: list[HistogramBucket]      # sparse: empty buckets omitted
    boundaries: list[int]
    total_priced: int
    max_price: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "buckets": [b._asdict() for b in self.buckets],
            "boundaries": self.boundaries,
            "totalPriced": self.total_priced,
            "maxPrice": self.max_price,
        }


def bucket_index(price: Decimal | int | float, boundaries: tuple[int, ...] | list[int]) -> int:
    """
    Index of the bucket holding `price`.

    Examples:
        >>> bucket_index(750_000, (0, 100_000, 500_000, 1_000_000))
        2
    """
    if price < 0:
        raise ValueError(f"price must be non-negative, got {price}")
    return max(bisect_right(list(boundaries), price) - 1, 0)


def build_histogram(
    prices: list[Decimal | int | float],
    boundaries: tuple[int, ...] | None = None,
) -> PriceHistogram:
    bounds = list(boundaries or settings.PRICE_HISTOGRAM_BOUNDARIES)
    counts = [0] * len(bounds)
    max_price = 0
    for price in prices:
        if price is None or price < 0:
            continue
        counts[bucket_index(price, bounds)] += 1
        max_price = max(max_price, int(price))

    return PriceHistogram(
        buckets=[HistogramBucket(idx=i, count=c) for i, c in enumerate(counts) if c],
        boundaries=bounds,
        total_priced=sum(counts),
        max_price=max_price,
    )


def histogram_predicates(predicates: PredicateSet) -> PredicateSet:
    """Drop the caller's price range and keep priced listings only."""
    return predicates.without(Dimension.PRICE_RANGE).add(
        Dimension.PRICE_RANGE, Not(IsNull("price_jpy"))
    )


async def compute_price_histogram(
    source: FacetSource,
    predicates: PredicateSet,
    boundaries: tuple[int, ...] | None = None,
    page_size: int | None = None,
    max_rows: int | None = None,
) -> PriceHistogram:
    """Page through priced matches and bucket their price_jpy."""
    scoped = histogram_predicates(predicates)
    step = page_size or settings.FACET_PAGE_SIZE
    ceiling = max_rows or settings.FACET_MAX_ROWS

    prices: list[Decimal] = []
    offset = 0
    while offset < ceiling:
        limit = min(step, ceiling - offset)
        rows = await source.fetch_rows(scoped, ["id", "price_jpy"], offset, limit)
        prices.extend(row["price_jpy"] for row in rows if row.get("price_jpy") is not None)
        if len(rows) < limit:
            break
        offset += len(rows)

    histogram = build_histogram(prices, boundaries)
    logger.debug(
        "price_histogram_computed",
        total_priced=histogram.total_priced,
        max_price=histogram.max_price,
        source="histogram",
    )
    return histogram
