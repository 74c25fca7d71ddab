"""
Tests for the price histogram.

Covers bucket boundaries, sparse output, and the predicate scoping that
keeps the caller's own price range out of the distribution.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from nihonto_search.search.compiler import BrowseParams, compile_query
from nihonto_search.search.histogram import (
    HistogramBucket,
    bucket_index,
    build_histogram,
    compute_price_histogram,
    histogram_predicates,
)
from nihonto_search.search.predicates import Dimension

BOUNDS = (0, 100_000, 500_000, 1_000_000)


# ---------------------------------------------------------------------------
# bucket_index
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "price,expected",
    [
        (0, 0),
        (99_999, 0),
        (100_000, 1),
        (750_000, 2),
        (1_000_000, 3),
        (25_000_000, 3),
        (Decimal("499999.99"), 1),
    ],
)
def test_bucket_index(price, expected):
    assert bucket_index(price, BOUNDS) == expected


def test_bucket_index_rejects_negative():
    with pytest.raises(ValueError, match="non-negative"):
        bucket_index(-1, BOUNDS)


# ---------------------------------------------------------------------------
# build_histogram
# ---------------------------------------------------------------------------

def test_build_histogram_sparse_buckets():
    histogram = build_histogram([50_000, 750_000, 800_000, 3_000_000], BOUNDS)

    assert histogram.buckets == [
        HistogramBucket(0, 1),
        HistogramBucket(2, 2),
        HistogramBucket(3, 1),
    ]
    assert histogram.total_priced == 4
    assert histogram.max_price == 3_000_000
    assert histogram.boundaries == list(BOUNDS)


def test_build_histogram_empty():
    histogram = build_histogram([], BOUNDS)

    assert histogram.buckets == []
    assert histogram.total_priced == 0
    assert histogram.max_price == 0


def test_build_histogram_as_dict():
    data = build_histogram([150_000], BOUNDS).as_dict()

    assert data == {
        "buckets": [{"idx": 1, "count": 1}],
        "boundaries": [0, 100_000, 500_000, 1_000_000],
        "totalPriced": 1,
        "maxPrice": 150_000,
    }


# ---------------------------------------------------------------------------
# Scoping & paging
# ---------------------------------------------------------------------------

def test_histogram_predicates_drop_price_range():
    compiled = compile_query(BrowseParams(price_min=500_000, certifications=["Juyo"]))

    scoped = histogram_predicates(compiled.predicates)

    assert scoped.has(Dimension.CERTIFICATION)
    assert scoped.has(Dimension.PRICE_RANGE)
    assert len(scoped.for_dimension(Dimension.PRICE_RANGE)) == 1
    assert scoped.signature() != compiled.predicates.signature()


async def test_caller_price_range_ignored(make_listing, memory_store):
    rows = [
        make_listing(1, price_value=Decimal(200_000), price_jpy=Decimal(200_000)),
        make_listing(2, price_value=Decimal(750_000), price_jpy=Decimal(750_000)),
        make_listing(3, price_value=Decimal(2_000_000), price_jpy=Decimal(2_000_000)),
        make_listing(4, price_value=None, price_jpy=None),
    ]
    compiled = compile_query(BrowseParams(price_min=1_000_000))

    histogram = await compute_price_histogram(memory_store(rows), compiled.predicates, BOUNDS)

    # Ask listing excluded; all three priced listings counted
    assert histogram.total_priced == 3
    assert histogram.buckets == [
        HistogramBucket(1, 1),
        HistogramBucket(2, 1),
        HistogramBucket(3, 1),
    ]


async def test_other_filters_still_apply(make_listing, memory_store):
    rows = [
        make_listing(1, cert_type="Juyo"),
        make_listing(2, cert_type="Hozon"),
    ]
    compiled = compile_query(BrowseParams(certifications=["Juyo"]))

    histogram = await compute_price_histogram(memory_store(rows), compiled.predicates, BOUNDS)

    assert histogram.total_priced == 1


async def test_pages_through_source(make_listing, memory_store):
    store = memory_store([make_listing(i) for i in range(1, 8)])

    histogram = await compute_price_histogram(
        store, compile_query(BrowseParams()).predicates, BOUNDS, page_size=3
    )

    assert histogram.total_priced == 7
    assert store.fetch_calls == [(0, 3), (3, 3), (6, 3)]
