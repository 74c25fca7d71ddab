"""
Nihonto Search — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- Listing row factory with collectible, visible, available defaults
- In-memory listing store (predicate evaluation in Python, no SQL)
- SQLite database (aiosqlite) with the real schema for adapter tests
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nihonto_search.models import Base, Dealer, Listing
from nihonto_search.search.predicates import PredicateSet, evaluate
from nihonto_search.store.sql import SearchPage


# ---------------------------------------------------------------------------
# Listing rows
# ---------------------------------------------------------------------------

_DEFAULT_ROW: dict[str, Any] = {
    "url": None,
    "dealer_id": 1,
    "title": "Katana",
    "title_en": None,
    "description": None,
    "description_en": None,
    "item_type": "katana",
    "item_category": None,
    "smith": None,
    "smith_romaji": None,
    "tosogu_maker": None,
    "school": None,
    "tosogu_school": None,
    "province": None,
    "era": None,
    "historical_period": None,
    "signature_status": None,
    "mei_type": None,
    "cert_type": None,
    "cert_session": None,
    "cert_organization": None,
    "nagasa_cm": None,
    "sori_cm": None,
    "height_cm": None,
    "price_value": Decimal("750000"),
    "price_currency": "JPY",
    "price_jpy": Decimal("750000"),
    "status": "available",
    "is_available": True,
    "is_sold": False,
    "first_seen_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    "last_scraped_at": None,
    "status_changed_at": None,
    "is_initial_import": False,
    "featured_score": None,
    "artisan_id": None,
    "artisan_confidence": None,
    "admin_hidden": False,
    "images": [],
}


@pytest.fixture
def make_listing() -> Callable[..., dict[str, Any]]:
    """Factory for listing rows; `id` is required, everything else defaults."""

    def _make(id: int, **overrides: Any) -> dict[str, Any]:
        row = {**_DEFAULT_ROW, "id": id, "url": f"https://aoijapan.com/item-{id}"}
        row.update(overrides)
        return row

    return _make


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryListingStore:
    """
    Listing store over a list of row dicts.

    Predicates are evaluated with predicates.evaluate(); search() returns
    rows in id order. fetch_calls records every (offset, limit) page read.
    """

    def __init__(self, rows: list[dict[str, Any]], dealers: dict[int, str] | None = None):
        self.rows = sorted(rows, key=lambda r: r["id"])
        self.dealers = dealers or {}
        self.fetch_calls: list[tuple[int, int]] = []

    def _matching(self, predicates: PredicateSet) -> list[dict[str, Any]]:
        return [r for r in self.rows if all(evaluate(p, r) for p in predicates.predicates())]

    async def search(self, compiled) -> SearchPage:
        matching = self._matching(compiled.predicates)
        page = matching[compiled.offset:compiled.offset + compiled.limit]
        return SearchPage(listings=[dict(r) for r in page], total=len(matching))

    async def fetch_rows(
        self,
        predicates: PredicateSet,
        columns: list[str],
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        self.fetch_calls.append((offset, limit))
        page = self._matching(predicates)[offset:offset + limit]
        return [{c: r.get(c) for c in columns} for r in page]

    async def dealer_names(self, dealer_ids: list[int]) -> dict[int, str]:
        return {i: self.dealers[i] for i in dealer_ids if i in self.dealers}

    async def last_updated(self) -> datetime | None:
        return max((r["last_scraped_at"] for r in self.rows if r.get("last_scraped_at")), default=None)


@pytest.fixture
def memory_store() -> type[InMemoryListingStore]:
    return InMemoryListingStore


# ---------------------------------------------------------------------------
# SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    File-backed SQLite database with the full schema.

    A file (not :memory:) so that concurrent sessions see the same data.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'nihonto.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield factory

    await engine.dispose()


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]) -> Callable:
    """Insert dealers and listing rows (as produced by make_listing)."""

    async def _seed(dealers: list[dict[str, Any]], listings: list[dict[str, Any]]) -> None:
        async with session_factory() as session:
            session.add_all(Dealer(**d) for d in dealers)
            await session.flush()
            session.add_all(Listing(**row) for row in listings)
            await session.commit()

    return _seed
