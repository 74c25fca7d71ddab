"""
Nihonto Search — Featured Score Refresh

Recomputes listings.featured_score for every available listing, in id-ordered
batches. Engagement counts are not stored alongside listings, so heat is 0
unless the caller supplies a lookup.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nihonto_search.models import Listing
from nihonto_search.search.exceptions import StoreError
from nihonto_search.search.featured import compute_featured_score

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 500


async def rescore_featured(
    session_factory: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
    heat_for: Callable[[int], float] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """
    Write a fresh featured_score to every available listing.

    Args:
        session_factory: Async session factory for the listings database.
        now: Reference time for freshness (default: current UTC time).
        heat_for: Optional listing id → engagement points lookup.
        batch_size: Listings loaded and committed per transaction.

    Returns:
        Number of listings scored.

    Raises:
        StoreError: If a batch cannot be read or written.
    """
    now = now or datetime.now(timezone.utc)
    started = time.monotonic()
    scored = 0
    last_id = 0

    while True:
        try:
            async with session_factory() as session:
                result = await session.execute(
                    select(Listing)
                    .where(Listing.status == "available", Listing.id > last_id)
                    .order_by(Listing.id)
                    .limit(batch_size)
                )
                listings = list(result.scalars())
                if not listings:
                    break

                for listing in listings:
                    heat = heat_for(listing.id) if heat_for is not None else 0
                    score = compute_featured_score(listing, heat=heat, now=now)
                    listing.featured_score = Decimal(str(score))

                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"rescore_featured failed after id {last_id}: {e}") from e

        scored += len(listings)
        last_id = listings[-1].id
        logger.debug("featured_batch_scored", batch=len(listings), last_id=last_id, source="scoring")

    logger.info(
        "featured_scores_refreshed",
        scored=scored,
        duration_ms=round((time.monotonic() - started) * 1000, 1),
        source="scoring",
    )
    return scored
