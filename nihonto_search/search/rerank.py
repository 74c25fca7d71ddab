"""
Nihonto Search — Dealer Diversity Rerank

Post-processes a featured-sort page so no dealer holds more than
`max_consecutive` adjacent slots while other dealers have items waiting.

Greedy: each output slot takes the earliest-ranked remaining listing whose
dealer is not already filling the last `max_consecutive` slots. When every
remaining listing would violate the cap, the remainder is appended in ranked
order. The result set never changes, and listings of the same dealer keep
their relative order.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from typing import Any, TypeVar

import structlog

from nihonto_search.config import settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _default_dealer_key(listing: Any) -> Hashable:
    if isinstance(listing, dict):
        return listing.get("dealer_id")
    return getattr(listing, "dealer_id", None)


def _blocked_dealer(output: list[T], max_consecutive: int, dealer_of: Callable[[T], Hashable]) -> Hashable | None:
    """Dealer that filled the last max_consecutive slots, if any."""
    if len(output) < max_consecutive:
        return None
    tail = {dealer_of(item) for item in output[-max_consecutive:]}
    return next(iter(tail)) if len(tail) == 1 else None


def rerank_for_dealer_diversity(
    listings: list[T],
    max_consecutive: int | None = None,
    dealer_of: Callable[[T], Hashable] = _default_dealer_key,
) -> list[T]:
    """
    Interleave dealers so no run exceeds max_consecutive.

    Args:
        listings: Page in ranked order.
        max_consecutive: Longest allowed same-dealer run
                         (default settings.DEALER_DIVERSITY_MAX_CONSECUTIVE).
        dealer_of: Extracts the dealer key from a listing.

    Returns:
        A permutation of listings.

    Raises:
        ValueError: If max_consecutive < 1.
    """
    cap = max_consecutive if max_consecutive is not None else settings.DEALER_DIVERSITY_MAX_CONSECUTIVE
    if cap < 1:
        raise ValueError(f"max_consecutive must be >= 1, got {cap}")
    if len(listings) <= cap:
        return list(listings)

    remaining = list(listings)
    output: list[T] = []

    while remaining:
        blocked = _blocked_dealer(output, cap, dealer_of)
        pick = next(
            (i for i, item in enumerate(remaining) if blocked is None or dealer_of(item) != blocked),
            None,
        )
        if pick is None:
            logger.debug(
                "dealer_diversity_exhausted",
                appended=len(remaining),
                dealer=blocked,
                source="rerank",
            )
            output.extend(remaining)
            break
        output.append(remaining.pop(pick))

    return output
