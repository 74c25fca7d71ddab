"""
Nihonto Search — Featured Score Refresh Tests

rescore_featured() against SQLite (aiosqlite).
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from nihonto_search.models import Listing
from nihonto_search.search.featured import compute_featured_score
from nihonto_search.store.scoring import rescore_featured

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

DEALERS = [{"id": 1, "name": "Aoi Art", "domain": "aoijapan.com"}]

IMAGES = ["front.jpg", "back.jpg"]


async def _scores(session_factory) -> dict[int, float | None]:
    async with session_factory() as session:
        result = await session.execute(select(Listing.id, Listing.featured_score))
        return {
            row.id: float(row.featured_score) if row.featured_score is not None else None
            for row in result
        }


async def test_scores_available_listings(session_factory, seed, make_listing) -> None:
    rows = [
        make_listing(1, images=IMAGES, cert_type="Juyo"),
        make_listing(2, images=IMAGES, smith="Kunihiro"),
        make_listing(3, images=IMAGES, status="sold", is_available=False, is_sold=True),
    ]
    await seed(DEALERS, rows)

    scored = await rescore_featured(session_factory, now=NOW)

    scores = await _scores(session_factory)
    assert scored == 2
    assert scores[1] == pytest.approx(compute_featured_score(rows[0], now=NOW))
    assert scores[2] == pytest.approx(compute_featured_score(rows[1], now=NOW))
    assert scores[1] > 0
    assert scores[3] is None


async def test_listing_without_images_scores_zero(session_factory, seed, make_listing) -> None:
    await seed(DEALERS, [make_listing(1, images=[], featured_score=Decimal("12.5"))])

    await rescore_featured(session_factory, now=NOW)

    assert (await _scores(session_factory))[1] == 0.0


async def test_batches_cover_every_listing(session_factory, seed, make_listing) -> None:
    await seed(DEALERS, [make_listing(i, images=IMAGES) for i in range(1, 6)])

    scored = await rescore_featured(session_factory, now=NOW, batch_size=2)

    scores = await _scores(session_factory)
    assert scored == 5
    assert all(score is not None and score > 0 for score in scores.values())


async def test_heat_lookup_raises_score(session_factory, seed, make_listing) -> None:
    await seed(DEALERS, [make_listing(1, images=IMAGES), make_listing(2, images=IMAGES)])

    await rescore_featured(session_factory, now=NOW, heat_for=lambda listing_id: 100 if listing_id == 2 else 0)

    scores = await _scores(session_factory)
    assert scores[2] > scores[1]


async def test_empty_database(session_factory) -> None:
    assert await rescore_featured(session_factory, now=NOW) == 0
