"""
Tests for subscription tiers, feature access and the data-delay cutoff.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from nihonto_search.entitlements import (
    Feature,
    SubscriptionTier,
    can_access_feature,
    entitlements_for,
    header_entitlements,
    parse_tier,
)

NOW = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)


class TestFeatureAccess:
    @pytest.mark.parametrize(
        "tier,feature,expected",
        [
            (SubscriptionTier.FREE, Feature.FRESH_DATA, False),
            (SubscriptionTier.ENTHUSIAST, Feature.FRESH_DATA, True),
            (SubscriptionTier.ENTHUSIAST, Feature.ARTIST_STATS, False),
            (SubscriptionTier.CONNOISSEUR, Feature.ARTIST_STATS, True),
            (SubscriptionTier.CONNOISSEUR, Feature.DEALER_ANALYTICS, False),
            (SubscriptionTier.DEALER, Feature.FRESH_DATA, True),
            (SubscriptionTier.DEALER, Feature.DEALER_ANALYTICS, True),
            (SubscriptionTier.DEALER, Feature.PRIVATE_LISTINGS, False),
        ],
    )
    def test_matrix(self, tier, feature, expected) -> None:
        assert can_access_feature(tier, feature) is expected


class TestParseTier:
    def test_known(self) -> None:
        assert parse_tier(" Connoisseur ") == SubscriptionTier.CONNOISSEUR

    def test_missing_is_free(self) -> None:
        assert parse_tier(None) == SubscriptionTier.FREE

    def test_unknown_is_free(self) -> None:
        assert parse_tier("platinum") == SubscriptionTier.FREE


class TestDelay:
    def test_free_viewer_delayed_72h(self) -> None:
        entitlements = entitlements_for(SubscriptionTier.FREE)

        assert entitlements.is_delayed
        assert entitlements.delay_cutoff(NOW) == NOW - timedelta(hours=72)

    def test_paid_viewer_not_delayed(self) -> None:
        entitlements = entitlements_for(SubscriptionTier.ENTHUSIAST)

        assert not entitlements.is_delayed
        assert entitlements.delay_cutoff(NOW) is None

    def test_admin_never_delayed(self) -> None:
        entitlements = entitlements_for(SubscriptionTier.FREE, is_admin=True)

        assert not entitlements.is_delayed
        assert entitlements.delay_cutoff(NOW) is None


class TestHeaderProvider:
    def test_no_headers(self) -> None:
        entitlements = header_entitlements(None, None)

        assert entitlements.tier == SubscriptionTier.FREE
        assert not entitlements.is_admin
        assert entitlements.is_delayed

    def test_admin_header(self) -> None:
        assert header_entitlements("free", "true").is_admin

    def test_admin_header_other_values(self) -> None:
        assert not header_entitlements("free", "no").is_admin
