"""
Nihonto Search — HTTP Routes

GET /api/browse  listings + facets + price histogram for one browse request
GET /health      liveness

Query parameters arrive as strings. Multi-value filters are comma-separated;
malformed numbers fall back to their defaults instead of failing the request.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, TypeVar

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from nihonto_search.config import Category, Tab, settings
from nihonto_search.entitlements import EntitlementProvider, Entitlements, header_entitlements
from nihonto_search.search.compiler import BrowseParams, parse_sort
from nihonto_search.service import BrowseService

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=Enum)

router = APIRouter()


# ---------------------------------------------------------------------------
# Parameter parsing
# ---------------------------------------------------------------------------

def split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def int_or_default(raw: str | None, default: int | None) -> int | None:
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def enum_or_default(enum_cls: type[E], raw: str | None, default: E) -> E:
    if not raw:
        return default
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        return default


def parse_bool(raw: str | None) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes")


def build_browse_params(
    tab: str | None = None,
    cat: str | None = None,
    type_: str | None = None,
    cert: str | None = None,
    school: str | None = None,
    dealer: str | None = None,
    period: str | None = None,
    sig: str | None = None,
    ask: str | None = None,
    price_min: str | None = None,
    price_max: str | None = None,
    artisan: str | None = None,
    q: str | None = None,
    sort: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    offset: str | None = None,
) -> BrowseParams:
    """Turn raw query-string values into BrowseParams."""
    dealers = [d for d in (int_or_default(v, None) for v in split_csv(dealer)) if d is not None]
    parsed_offset = int_or_default(offset, None)

    return BrowseParams(
        tab=enum_or_default(Tab, tab, Tab.AVAILABLE),
        category=enum_or_default(Category, cat, Category.ALL),
        item_types=split_csv(type_),
        certifications=split_csv(cert),
        schools=split_csv(school),
        dealers=dealers,
        historical_periods=split_csv(period),
        signature_statuses=split_csv(sig),
        ask_only=parse_bool(ask),
        price_min=int_or_default(price_min, None),
        price_max=int_or_default(price_max, None),
        artisan=artisan.strip() if artisan and artisan.strip() else None,
        query=q,
        sort=parse_sort(sort),
        page=int_or_default(page, 1),
        limit=int_or_default(limit, settings.DEFAULT_PAGE_SIZE),
        offset=parsed_offset if parsed_offset is not None and parsed_offset >= 0 else None,
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_browse_service(request: Request) -> BrowseService:
    return request.app.state.browse_service


def get_entitlement_provider(request: Request) -> EntitlementProvider:
    return getattr(request.app.state, "entitlement_provider", header_entitlements)


def get_entitlements(
    x_subscription_tier: str | None = Header(None),
    x_admin: str | None = Header(None),
    provider: EntitlementProvider = Depends(get_entitlement_provider),
) -> Entitlements:
    return provider(x_subscription_tier, x_admin)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/api/browse")
async def browse(
    tab: str | None = Query(None),
    cat: str | None = Query(None),
    type_: str | None = Query(None, alias="type"),
    cert: str | None = Query(None),
    school: str | None = Query(None),
    dealer: str | None = Query(None),
    period: str | None = Query(None),
    sig: str | None = Query(None),
    ask: str | None = Query(None),
    price_min: str | None = Query(None, alias="priceMin"),
    price_max: str | None = Query(None, alias="priceMax"),
    artisan: str | None = Query(None),
    q: str | None = Query(None),
    sort: str | None = Query(None),
    page: str | None = Query(None),
    limit: str | None = Query(None),
    offset: str | None = Query(None),
    service: BrowseService = Depends(get_browse_service),
    entitlements: Entitlements = Depends(get_entitlements),
) -> Any:
    params = build_browse_params(
        tab=tab, cat=cat, type_=type_, cert=cert, school=school, dealer=dealer,
        period=period, sig=sig, ask=ask, price_min=price_min, price_max=price_max,
        artisan=artisan, q=q, sort=sort, page=page, limit=limit, offset=offset,
    )

    try:
        result = await service.browse(params, entitlements)
    except Exception as e:
        logger.error(
            "browse_request_failed",
            error=str(e),
            error_type=type(e).__name__,
            query=q,
            tier=entitlements.tier.value,
            source="api",
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return result.as_dict()
