"""
Nihonto Search — Browse Service

Orchestrates one browse request:

1. Resolve the viewer's delay cutoff from their entitlements
2. Resolve residual romaji words through the artisan registry (best-effort)
3. Compile the request into one predicate set, sort and window
4. Fan out: main search + count, facets, price histogram, last-updated
5. Rerank the page for dealer diversity (featured sort only)

The main search is the only hard dependency. Facets, histogram and the
freshness lookup are bounded by SECONDARY_QUERY_TIMEOUT_SECONDS and degrade
to empty / None. A pagination range error from the store yields an empty,
well-formed page with empty facets and no histogram. If the main search
fails, the secondary queries are cancelled before the error propagates.

Usage:
    service = BrowseService(store, registry=registry)
    result = await service.browse(params, entitlements)
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, NamedTuple, TypeVar

import structlog

from nihonto_search.config import settings
from nihonto_search.entitlements import Entitlements
from nihonto_search.search.artisan import ArtisanRegistry, resolve_artisan_codes_from_text
from nihonto_search.search.cache import NullCache, TTLCache
from nihonto_search.search.compiler import (
    BrowseParams,
    CompileContext,
    CompiledQuery,
    artisan_lookup_words,
    compile_query,
)
from nihonto_search.search.exceptions import StoreRangeError
from nihonto_search.search.facets import FacetAggregator, Facets
from nihonto_search.search.histogram import PriceHistogram, compute_price_histogram
from nihonto_search.search.rerank import rerank_for_dealer_diversity
from nihonto_search.store.sql import SearchPage

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BrowseResult(NamedTuple):
    listings: list[dict[str, Any]]
    total: int
    page: int
    total_pages: int
    facets: Facets
    price_histogram: PriceHistogram | None
    last_updated: datetime | None
    is_delayed: bool
    subscription_tier: str
    is_admin: bool
    is_url_search: bool

    def as_dict(self) -> dict[str, Any]:
        """Response body with the camelCase keys the browse UI expects."""
        return {
            "listings": self.listings,
            "total": self.total,
            "page": self.page,
            "totalPages": self.total_pages,
            "facets": self.facets.as_dict(),
            "priceHistogram": self.price_histogram.as_dict() if self.price_histogram else None,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "isDelayed": self.is_delayed,
            "subscriptionTier": self.subscription_tier,
            "isAdmin": self.is_admin,
            "isUrlSearch": self.is_url_search,
        }


def default_facet_cache() -> TTLCache | NullCache:
    if settings.FACET_CACHE_ENABLED:
        return TTLCache(settings.FACET_CACHE_TTL_SECONDS)
    return NullCache()


class BrowseService:
    """
    Request orchestrator over a listing store and an optional artisan registry.

    The store must provide search(), fetch_rows(), dealer_names() and
    last_updated() (see SqlListingStore).
    """

    def __init__(
        self,
        store: Any,
        registry: ArtisanRegistry | None = None,
        facet_cache: TTLCache | NullCache | None = None,
        secondary_timeout: float | None = None,
    ):
        self.store = store
        self.registry = registry
        self.facets = FacetAggregator(
            store, cache=facet_cache if facet_cache is not None else default_facet_cache()
        )
        self.secondary_timeout = secondary_timeout or settings.SECONDARY_QUERY_TIMEOUT_SECONDS

    # -----------------------------------------------------------------------
    # Compilation
    # -----------------------------------------------------------------------

    async def compile(
        self,
        params: BrowseParams,
        entitlements: Entitlements,
        now: datetime | None = None,
    ) -> CompiledQuery:
        """Resolve artisan codes for the query, then compile it."""
        now = now or datetime.now(timezone.utc)
        context = CompileContext(
            is_admin=entitlements.is_admin,
            delay_cutoff=entitlements.delay_cutoff(now),
            min_price_jpy=settings.MIN_PRICE_JPY,
            known_domains=tuple(settings.KNOWN_DEALER_DOMAINS),
        )

        words = artisan_lookup_words(params, context)
        codes = await resolve_artisan_codes_from_text(self.registry, words) if words else []
        return compile_query(params, context, artisan_codes=codes)

    # -----------------------------------------------------------------------
    # Fan-out
    # -----------------------------------------------------------------------

    async def _search(self, compiled: CompiledQuery) -> SearchPage | None:
        """Main search page, or None when the page is past the end of the results."""
        try:
            return await self.store.search(compiled)
        except StoreRangeError as e:
            logger.info(
                "search_page_out_of_range",
                offset=compiled.offset,
                limit=compiled.limit,
                error=str(e),
                source="service",
            )
            return None

    @staticmethod
    async def _cancel(tasks: list[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _best_effort(self, name: str, work: Callable[[], Awaitable[T]], fallback: T) -> T:
        try:
            return await asyncio.wait_for(work(), timeout=self.secondary_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "secondary_query_timeout",
                query=name,
                timeout_seconds=self.secondary_timeout,
                source="service",
            )
        except Exception as e:
            logger.warning(
                "secondary_query_failed",
                query=name,
                error=str(e),
                error_type=type(e).__name__,
                source="service",
            )
        return fallback

    async def browse(
        self,
        params: BrowseParams,
        entitlements: Entitlements,
        now: datetime | None = None,
    ) -> BrowseResult:
        """
        Run one browse request end to end.

        Args:
            params: Browse parameters.
            entitlements: Viewer tier and admin flag.
            now: Reference time for the tier delay (default: current UTC time).

        Returns:
            BrowseResult.

        Raises:
            StoreError: If the main search fails for a reason other than an
                        out-of-range page.
        """
        started = time.monotonic()
        compiled = await self.compile(params, entitlements, now)

        secondary = [
            asyncio.create_task(
                self._best_effort(
                    "facets", lambda: self.facets.aggregate(compiled.predicates), Facets.empty()
                )
            ),
            asyncio.create_task(
                self._best_effort(
                    "price_histogram",
                    lambda: compute_price_histogram(self.store, compiled.predicates),
                    None,
                )
            ),
            asyncio.create_task(self._best_effort("last_updated", self.store.last_updated, None)),
        ]

        try:
            page = await self._search(compiled)
        except BaseException:
            await self._cancel(secondary)
            raise

        if page is None:
            # Out-of-range page: nothing to aggregate over
            await self._cancel(secondary)
            page = SearchPage(listings=[], total=0)
            facets, histogram, last_updated = Facets.empty(), None, None
        else:
            facets, histogram, last_updated = await asyncio.gather(*secondary)

        listings = page.listings
        if compiled.apply_dealer_diversity:
            listings = rerank_for_dealer_diversity(listings)

        result = BrowseResult(
            listings=listings,
            total=page.total,
            page=compiled.page,
            total_pages=math.ceil(page.total / compiled.limit) if page.total else 0,
            facets=facets,
            price_histogram=histogram,
            last_updated=last_updated,
            is_delayed=entitlements.is_delayed,
            subscription_tier=entitlements.tier.value,
            is_admin=entitlements.is_admin,
            is_url_search=compiled.is_url_search,
        )

        logger.info(
            "browse_complete",
            strategy=compiled.strategy.value,
            total=result.total,
            returned=len(listings),
            page=result.page,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
            source="service",
        )
        return result
