"""
Nihonto Search — Store & Browse Service Tests

End-to-end browse requests against SqlListingStore on SQLite (aiosqlite),
plus degradation paths with an in-memory store: out-of-range pages,
failing and slow secondary queries.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from nihonto_search.config import SortMode, Tab
from nihonto_search.entitlements import SubscriptionTier, entitlements_for
from nihonto_search.search.cache import NullCache
from nihonto_search.search.compiler import BrowseParams, ResolutionStrategy, compile_query
from nihonto_search.search.exceptions import StoreError, StoreRangeError
from nihonto_search.search.facets import FacetCount, Facets
from nihonto_search.service import BrowseService
from nihonto_search.store.sql import SqlListingStore

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

DEALERS = [
    {"id": 1, "name": "Aoi Art", "domain": "aoijapan.com"},
    {"id": 2, "name": "Iida Koendo", "domain": "iidakoendo.com"},
]

PAID = entitlements_for(SubscriptionTier.ENTHUSIAST)
FREE = entitlements_for(SubscriptionTier.FREE)
ADMIN = entitlements_for(SubscriptionTier.FREE, is_admin=True)


def _yen(value: int | None) -> dict:
    amount = Decimal(value) if value is not None else None
    return {"price_value": amount, "price_jpy": amount}


def _ids(listings: list[dict]) -> list[int]:
    return [listing["id"] for listing in listings]


@pytest.fixture
def service(session_factory) -> BrowseService:
    return BrowseService(SqlListingStore(session_factory), facet_cache=NullCache())


class FakeRegistry:
    def __init__(self, codes: dict[str, list[str]]):
        self.codes = codes

    async def resolve_codes(self, names: list[str]) -> list[str]:
        return [code for name in names for code in self.codes.get(name, [])]


# ---------------------------------------------------------------------------
# SqlListingStore
# ---------------------------------------------------------------------------

class TestSqlStore:
    async def test_price_range_keeps_ask_items(self, session_factory, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(1, **_yen(None)),
            make_listing(2, **_yen(400_000)),
            make_listing(3, **_yen(2_000_000)),
            make_listing(4, **_yen(750_000)),
        ])
        compiled = compile_query(BrowseParams(tab=Tab.AVAILABLE, price_min=500_000, price_max=1_000_000))

        page = await SqlListingStore(session_factory).search(compiled)

        assert sorted(_ids(page.listings)) == [1, 4]
        assert page.total == 2

    async def test_price_asc_puts_ask_items_last(self, session_factory, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(1, **_yen(None)),
            make_listing(2, **_yen(900_000)),
            make_listing(3, **_yen(300_000)),
        ])
        compiled = compile_query(BrowseParams(sort=SortMode.PRICE_ASC))

        page = await SqlListingStore(session_factory).search(compiled)

        assert _ids(page.listings) == [3, 2, 1]

    async def test_rows_carry_dealer(self, session_factory, seed, make_listing) -> None:
        await seed(DEALERS, [make_listing(1, dealer_id=2)])

        page = await SqlListingStore(session_factory).search(compile_query(BrowseParams()))

        assert page.listings[0]["dealers"] == {"id": 2, "name": "Iida Koendo", "domain": "iidakoendo.com"}

    async def test_full_text_without_postgres(self, session_factory, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(1, title="Rai Kunimitsu Tanto"),
            make_listing(2, title="Osafune Katana"),
        ])
        compiled = compile_query(BrowseParams(query="kunimitsu"))

        page = await SqlListingStore(session_factory).search(compiled)

        assert compiled.strategy == ResolutionStrategy.ROMAJI_FTS
        assert _ids(page.listings) == [1]

    async def test_fetch_rows_pages_by_id(self, session_factory, seed, make_listing) -> None:
        await seed(DEALERS, [make_listing(i) for i in range(1, 6)])
        store = SqlListingStore(session_factory)
        predicates = compile_query(BrowseParams()).predicates

        rows = await store.fetch_rows(predicates, ["id", "item_type"], offset=2, limit=2)

        assert rows == [{"id": 3, "item_type": "katana"}, {"id": 4, "item_type": "katana"}]

    async def test_dealer_names_and_last_updated(self, session_factory, seed, make_listing) -> None:
        scraped = datetime(2026, 10, 15, 8, 30)
        await seed(DEALERS, [
            make_listing(1, last_scraped_at=scraped),
            make_listing(2, last_scraped_at=scraped - timedelta(days=1)),
        ])
        store = SqlListingStore(session_factory)

        assert await store.dealer_names([1, 2, 99]) == {1: "Aoi Art", 2: "Iida Koendo"}
        assert await store.dealer_names([]) == {}
        assert (await store.last_updated()).replace(tzinfo=None) == scraped


# ---------------------------------------------------------------------------
# BrowseService over SQLite
# ---------------------------------------------------------------------------

class TestBrowse:
    async def test_response_shape(self, service, seed, make_listing) -> None:
        await seed(DEALERS, [make_listing(i, cert_type="Juyo") for i in range(1, 4)])

        result = await service.browse(BrowseParams(limit=2), PAID, now=NOW)
        body = result.as_dict()

        assert result.total == 3
        assert result.total_pages == 2
        assert len(result.listings) == 2
        assert body["facets"]["certifications"] == [{"value": "Juyo", "count": 3}]
        assert body["priceHistogram"]["totalPriced"] == 3
        assert body["isDelayed"] is False
        assert body["subscriptionTier"] == "enthusiast"
        assert body["isUrlSearch"] is False

    async def test_empty_result(self, service, seed) -> None:
        await seed(DEALERS, [])

        result = await service.browse(BrowseParams(), PAID, now=NOW)

        assert result.total == 0
        assert result.total_pages == 0
        assert result.facets == Facets.empty()
        assert result.last_updated is None

    async def test_facets_cross_filtered(self, service, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(1, cert_type="Juyo", item_type="katana"),
            make_listing(2, cert_type="juyo", item_type="tanto"),
            make_listing(3, cert_type="Hozon", item_type="tsuba"),
        ])

        result = await service.browse(BrowseParams(certifications=["Juyo"]), PAID, now=NOW)

        assert _ids(result.listings) == [2, 1]
        assert result.facets.certifications == [FacetCount("Juyo", 2), FacetCount("Hozon", 1)]
        assert {fc.value for fc in result.facets.item_types} == {"katana", "tanto"}

    async def test_free_tier_delay(self, service, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(1, first_seen_at=NOW - timedelta(hours=10)),
            make_listing(2, first_seen_at=NOW - timedelta(days=5)),
        ])

        free = await service.browse(BrowseParams(), FREE, now=NOW)
        admin = await service.browse(BrowseParams(), ADMIN, now=NOW)

        assert _ids(free.listings) == [2]
        assert free.is_delayed is True
        assert _ids(admin.listings) == [1, 2]
        assert admin.is_admin is True

    async def test_url_search_bypasses_gates(self, service, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(1, status="sold", is_available=False, item_type="stand", **_yen(5_000)),
            make_listing(2),
        ])

        result = await service.browse(
            BrowseParams(query="https://www.aoijapan.com/item-1"), PAID, now=NOW
        )

        assert result.is_url_search is True
        assert _ids(result.listings) == [1]

    async def test_url_search_keeps_admin_hidden(self, service, seed, make_listing) -> None:
        await seed(DEALERS, [make_listing(1, admin_hidden=True)])

        result = await service.browse(BrowseParams(query="aoijapan.com/item-1"), PAID, now=NOW)

        assert result.listings == []

    async def test_artisan_branch(self, session_factory, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(1, title="Soshu tanto", artisan_id="MAS590"),
            make_listing(2, title="Katana by Masamune"),
            make_listing(3, title="Osafune katana"),
        ])
        service = BrowseService(
            SqlListingStore(session_factory),
            registry=FakeRegistry({"masamune": ["MAS590"]}),
            facet_cache=NullCache(),
        )

        result = await service.browse(BrowseParams(query="masamune"), PAID, now=NOW)

        assert sorted(_ids(result.listings)) == [1, 2]

    async def test_artisan_branch_compiles_with_code_strategy(self, memory_store) -> None:
        service = BrowseService(
            memory_store([]), registry=FakeRegistry({"masamune": ["MAS590"]}), facet_cache=NullCache()
        )

        compiled = await service.compile(BrowseParams(query="masamune"), PAID, now=NOW)

        assert compiled.strategy == ResolutionStrategy.ARTISAN_CODE

    async def test_featured_rerank(self, service, seed, make_listing) -> None:
        listings = [
            make_listing(i, dealer_id=1, featured_score=Decimal(100 - i)) for i in range(1, 7)
        ] + [
            make_listing(i, dealer_id=2, featured_score=Decimal(60 - i)) for i in range(7, 10)
        ]
        await seed(DEALERS, listings)

        result = await service.browse(BrowseParams(sort=SortMode.FEATURED), PAID, now=NOW)

        assert [listing["dealer_id"] for listing in result.listings] == [1, 1, 2, 1, 1, 2, 1, 1, 2]
        assert [i for i in _ids(result.listings) if i <= 6] == [1, 2, 3, 4, 5, 6]

    async def test_featured_single_dealer_not_reranked(self, service, seed, make_listing) -> None:
        await seed(DEALERS, [
            make_listing(i, dealer_id=1, featured_score=Decimal(100 - i)) for i in range(1, 5)
        ])

        result = await service.browse(BrowseParams(sort=SortMode.FEATURED, dealers=[1]), PAID, now=NOW)

        assert _ids(result.listings) == [1, 2, 3, 4]


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------

class RangeErrorStore:
    def __init__(self, inner):
        self.inner = inner

    async def search(self, compiled):
        raise StoreRangeError("Requested range not satisfiable", code="PGRST103")

    def __getattr__(self, name):
        return getattr(self.inner, name)


class FailingSecondaryStore:
    def __init__(self, inner, delay: float | None = None):
        self.inner = inner
        self.delay = delay

    async def search(self, compiled):
        return await self.inner.search(compiled)

    async def fetch_rows(self, predicates, columns, offset, limit):
        if self.delay is not None:
            await asyncio.sleep(self.delay)
            return []
        raise RuntimeError("connection reset")

    async def dealer_names(self, dealer_ids):
        return {}

    async def last_updated(self):
        raise RuntimeError("connection reset")


class FailingSearchStore(FailingSecondaryStore):
    async def search(self, compiled):
        raise StoreError("search failed: connection refused")


class SlowSecondaryStore:
    """Main search fails fast while the secondary queries are still running."""

    def __init__(self, inner, error: Exception):
        self.inner = inner
        self.error = error
        self.completed: list[str] = []

    async def search(self, compiled):
        await asyncio.sleep(0.01)
        raise self.error

    async def fetch_rows(self, predicates, columns, offset, limit):
        await asyncio.sleep(0.2)
        self.completed.append("fetch_rows")
        return await self.inner.fetch_rows(predicates, columns, offset, limit)

    async def dealer_names(self, dealer_ids):
        return {}

    async def last_updated(self):
        await asyncio.sleep(0.2)
        self.completed.append("last_updated")
        return NOW


class TestDegradation:
    async def test_range_error_returns_empty_page(self, memory_store, make_listing) -> None:
        service = BrowseService(RangeErrorStore(memory_store([make_listing(1)])), facet_cache=NullCache())

        result = await service.browse(BrowseParams(page=40), PAID, now=NOW)

        assert result.listings == []
        assert result.total == 0
        assert result.page == 40
        assert result.total_pages == 0
        assert result.facets == Facets.empty()
        assert result.price_histogram is None
        assert result.last_updated is None

    async def test_secondary_failures_degrade(self, memory_store, make_listing) -> None:
        store = FailingSecondaryStore(memory_store([make_listing(1), make_listing(2)]))
        service = BrowseService(store, facet_cache=NullCache())

        result = await service.browse(BrowseParams(), PAID, now=NOW)

        assert _ids(result.listings) == [1, 2]
        assert result.facets == Facets.empty()
        assert result.price_histogram is None
        assert result.last_updated is None

    async def test_slow_secondary_times_out(self, memory_store, make_listing) -> None:
        store = FailingSecondaryStore(memory_store([make_listing(1)]), delay=1.0)
        service = BrowseService(store, facet_cache=NullCache(), secondary_timeout=0.05)

        result = await service.browse(BrowseParams(), PAID, now=NOW)

        assert result.total == 1
        assert result.facets == Facets.empty()
        assert result.price_histogram is None

    async def test_main_search_failure_propagates(self, memory_store) -> None:
        service = BrowseService(FailingSearchStore(memory_store([])), facet_cache=NullCache())

        with pytest.raises(StoreError, match="connection refused"):
            await service.browse(BrowseParams(), PAID, now=NOW)

    async def test_main_search_failure_cancels_secondary_queries(self, memory_store, make_listing) -> None:
        store = SlowSecondaryStore(memory_store([make_listing(1)]), StoreError("search failed: connection refused"))
        service = BrowseService(store, facet_cache=NullCache(), secondary_timeout=5.0)

        with pytest.raises(StoreError):
            await service.browse(BrowseParams(), PAID, now=NOW)
        await asyncio.sleep(0.3)

        assert store.completed == []

    async def test_range_error_cancels_secondary_queries(self, memory_store, make_listing) -> None:
        store = SlowSecondaryStore(memory_store([make_listing(1)]), StoreRangeError("offset out of range"))
        service = BrowseService(store, facet_cache=NullCache(), secondary_timeout=5.0)

        result = await service.browse(BrowseParams(page=40), PAID, now=NOW)
        await asyncio.sleep(0.3)

        assert result.total == 0
        assert result.facets == Facets.empty()
        assert store.completed == []

    async def test_registry_failure_falls_back_to_full_text(self, memory_store, make_listing) -> None:
        class BrokenRegistry:
            async def resolve_codes(self, names):
                raise RuntimeError("registry down")

        service = BrowseService(memory_store([make_listing(1)]), registry=BrokenRegistry(), facet_cache=NullCache())

        compiled = await service.compile(BrowseParams(query="masamune"), PAID, now=NOW)

        assert compiled.strategy == ResolutionStrategy.ROMAJI_FTS
