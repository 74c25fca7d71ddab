"""
Nihonto Search — Viewer Entitlements

Subscription tier and admin flag of the viewer, and the data-delay cutoff
derived from them. Free-tier viewers see only listings discovered more than
DATA_DELAY_HOURS ago; admins are never delayed.

How the tier is established (sessions, billing) is outside this service: an
EntitlementProvider hands the browse route an Entitlements value.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import NamedTuple, Protocol

import structlog

from nihonto_search.config import settings

logger = structlog.get_logger(__name__)


class SubscriptionTier(str, Enum):
    FREE = "free"
    ENTHUSIAST = "enthusiast"
    CONNOISSEUR = "connoisseur"
    DEALER = "dealer"


class Feature(str, Enum):
    FRESH_DATA = "fresh_data"              # no listing delay
    SAVED_SEARCHES = "saved_searches"
    PRIVATE_LISTINGS = "private_listings"
    ARTIST_STATS = "artist_stats"
    DEALER_ANALYTICS = "dealer_analytics"


# Dealer ranks with enthusiast but is handled separately below
_TIER_RANK: dict[SubscriptionTier, int] = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.ENTHUSIAST: 1,
    SubscriptionTier.CONNOISSEUR: 2,
    SubscriptionTier.DEALER: 1,
}

_FEATURE_MIN_TIER: dict[Feature, SubscriptionTier] = {
    Feature.FRESH_DATA: SubscriptionTier.ENTHUSIAST,
    Feature.SAVED_SEARCHES: SubscriptionTier.ENTHUSIAST,
    Feature.PRIVATE_LISTINGS: SubscriptionTier.CONNOISSEUR,
    Feature.ARTIST_STATS: SubscriptionTier.CONNOISSEUR,
    Feature.DEALER_ANALYTICS: SubscriptionTier.DEALER,
}


def can_access_feature(tier: SubscriptionTier, feature: Feature) -> bool:
    """
    Check whether a tier unlocks a feature.

    Dealers get enthusiast features plus dealer analytics, never the
    connoisseur set.
    """
    required = _FEATURE_MIN_TIER[feature]
    if tier == SubscriptionTier.DEALER:
        return required in (SubscriptionTier.ENTHUSIAST, SubscriptionTier.DEALER)
    if required == SubscriptionTier.DEALER:
        return False
    return _TIER_RANK[tier] >= _TIER_RANK[required]


def parse_tier(raw: str | None) -> SubscriptionTier:
    """Unknown or missing values fall back to FREE."""
    if not raw:
        return SubscriptionTier.FREE
    try:
        return SubscriptionTier(raw.strip().lower())
    except ValueError:
        logger.warning("unknown_subscription_tier", tier=raw, source="entitlements")
        return SubscriptionTier.FREE


class Entitlements(NamedTuple):
    tier: SubscriptionTier
    is_admin: bool
    is_delayed: bool

    def delay_cutoff(self, now: datetime) -> datetime | None:
        """Latest first_seen_at visible to this viewer, or None if undelayed."""
        if not self.is_delayed:
            return None
        return now - timedelta(hours=settings.DATA_DELAY_HOURS)


def entitlements_for(tier: SubscriptionTier, is_admin: bool = False) -> Entitlements:
    is_delayed = not is_admin and not can_access_feature(tier, Feature.FRESH_DATA)
    return Entitlements(tier=tier, is_admin=is_admin, is_delayed=is_delayed)


class EntitlementProvider(Protocol):
    """Resolves the viewer's entitlements for a request."""

    def __call__(self, tier_header: str | None, admin_header: str | None) -> Entitlements:
        ...


def header_entitlements(tier_header: str | None, admin_header: str | None) -> Entitlements:
    """
    Default provider: trust X-Subscription-Tier and X-Admin headers.

    Only suitable behind a gateway that sets these headers itself.
    """
    is_admin = (admin_header or "").strip().lower() in ("1", "true", "yes")
    return entitlements_for(parse_tier(tier_header), is_admin=is_admin)
