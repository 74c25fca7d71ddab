"""
Nihonto Search — Featured Score

Precomputed ranking signal behind the "featured" sort:

    quality   = artisan stature + certification points + completeness
    heat      = capped 30-day engagement (favorites, dealer clicks,
                quick-view opens, views, pinch zooms)
    freshness = multiplier by listing age (0.3 – 1.4)

    featured_score = round((quality + heat) × freshness, 2)

Listings without images score 0. Initial-import listings are not "new" and
get a neutral freshness of 1.0.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, NamedTuple

from nihonto_search.search.artisan import UNKNOWN_ARTISAN_CODES

# Keyed by raw cert_type spelling
CERT_POINTS: dict[str, int] = {
    "Tokuju": 40,
    "Tokubetsu Juyo": 40,
    "tokubetsu_juyo": 40,
    "Juyo": 28,
    "juyo": 28,
    "Juyo Tosogu": 28,
    "TokuHozon": 14,
    "Tokubetsu Hozon": 14,
    "tokubetsu_hozon": 14,
    "Tokubetsu Hozon Tosogu": 14,
    "Hozon": 7,
    "hozon": 7,
    "Hozon Tosogu": 7,
    "Juyo Bijutsuhin": 35,
    "JuBi": 35,
    "TokuKicho": 10,
    "Tokubetsu Kicho": 10,
}

# (max age in days, multiplier); older than the last band → 0.3
_FRESHNESS_BANDS: tuple[tuple[int, float], ...] = (
    (3, 1.4),
    (7, 1.2),
    (30, 1.0),
    (90, 0.85),
    (180, 0.5),
)
_STALE_MULTIPLIER = 0.3

_DESCRIPTION_MIN_CHARS = 100


class EngagementCounts(NamedTuple):
    """30-day engagement for one listing."""
    favorites: int = 0
    dealer_clicks: int = 0
    quickview_opens: int = 0
    views: int = 0
    pinch_zooms: int = 0


def _get(listing: Any, name: str) -> Any:
    if isinstance(listing, dict):
        return listing.get(name)
    return getattr(listing, name, None)


def image_count(listing: Any) -> int:
    images = _get(listing, "images")
    return len(images) if isinstance(images, list) else 0


def compute_heat(engagement: EngagementCounts) -> int:
    """Engagement points, 0 – 160."""
    return (
        min(engagement.favorites * 15, 60)
        + min(engagement.dealer_clicks * 10, 40)
        + min(engagement.quickview_opens * 3, 24)
        + min(engagement.views, 20)
        + min(engagement.pinch_zooms * 8, 16)
    )


def compute_quality(listing: Any) -> float:
    """Artisan stature + certification points + completeness (0 – 55)."""
    artisan_id = _get(listing, "artisan_id")
    has_real_artisan = bool(artisan_id) and artisan_id not in UNKNOWN_ARTISAN_CODES
    elite_factor = float(_get(listing, "artisan_elite_factor") or 0) if has_real_artisan else 0.0
    elite_count = int(_get(listing, "artisan_elite_count") or 0) if has_real_artisan else 0

    stature = elite_factor * 200 + min(math.sqrt(elite_count) * 18, 100)

    cert_type = _get(listing, "cert_type")
    cert_points = CERT_POINTS.get(cert_type, 0) if cert_type else 0

    description = _get(listing, "description") or ""
    completeness = (
        min(image_count(listing) * 3, 15)
        + (10 if _get(listing, "price_value") else 0)
        + (8 if _get(listing, "smith") or _get(listing, "tosogu_maker") else 0)
        + (5 if _get(listing, "nagasa_cm") or _get(listing, "height_cm") else 0)
        + (5 if len(description) > _DESCRIPTION_MIN_CHARS else 0)
        + (4 if _get(listing, "era") else 0)
        + (3 if _get(listing, "school") or _get(listing, "tosogu_school") else 0)
        + (5 if _get(listing, "artisan_confidence") == "HIGH" else 0)
    )
    return stature + cert_points + completeness


def compute_freshness(listing: Any, now: datetime | None = None) -> float:
    if _get(listing, "is_initial_import"):
        return 1.0
    first_seen = _get(listing, "first_seen_at")
    if first_seen is None:
        return 1.0

    now = now or datetime.now(timezone.utc)
    if first_seen.tzinfo is None:
        first_seen = first_seen.replace(tzinfo=timezone.utc)
    age_days = (now - first_seen).total_seconds() / 86400

    for max_days, multiplier in _FRESHNESS_BANDS:
        if age_days < max_days:
            return multiplier
    return _STALE_MULTIPLIER


def compute_featured_score(listing: Any, heat: float = 0, now: datetime | None = None) -> float:
    """
    Featured score for a listing (ORM object or dict).

    Args:
        listing: Listing with the scoring columns.
        heat: Engagement points from compute_heat().
        now: Reference time for freshness (default: current UTC time).

    Returns:
        Score rounded to 2 decimal places; 0 without images.
    """
    if image_count(listing) == 0:
        return 0.0
    quality = compute_quality(listing)
    freshness = compute_freshness(listing, now)
    return round((quality + heat) * freshness, 2)
