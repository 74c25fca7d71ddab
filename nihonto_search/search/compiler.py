"""
Nihonto Search — Query Compiler (Browse Pipeline)

Compiles browse parameters and free text into one PredicateSet, sort
keys and a pagination window. No I/O: artisan codes are resolved
by the caller between plan_free_text() and compile_query().

Pipeline (each stage is CompileState → CompileState):
1. URL short-circuit: a pasted dealer URL is matched against listing URLs with
   only the tier delay and admin visibility gates applied
2. Status (available / sold / all)
3. Tier delay gate: first_seen_at <= cutoff for delayed viewers
4. Minimum price: price_value IS NULL OR price_jpy >= MIN_PRICE_JPY
5. Collectibility: non-collectible types and admin-hidden listings excluded
6. Category / item-type gating, skipped when the query holds a code-shaped token
7. Structured filters: ask-only, price range, certification, school, dealer,
   period, signature, artisan
8. Free text: semantic extraction (explicit filters win) → numeric
   extraction → artisan-code / CJK substring / romaji full-text branch

Sort and pagination are derived last.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple

import structlog
from pydantic import BaseModel, Field

from nihonto_search.config import Category, ListingStatus, SortMode, Tab, settings
from nihonto_search.search.artisan import find_artisan_code
from nihonto_search.search.cjk import any_contains_cjk
from nihonto_search.search.fts import build_fts_query
from nihonto_search.search.numeric_filters import ComparisonOp, NumericFilter, parse_numeric_filters
from nihonto_search.search.predicates import (
    Dimension,
    Eq,
    FullText,
    InSet,
    IsNull,
    Not,
    PredicateSet,
    Range,
    Substring,
    all_of,
    any_of,
    substring_any,
)
from nihonto_search.search.semantic_parser import ExtractedFilters, parse_semantic_query
from nihonto_search.search.text_normalization import expand_aliases, get_search_variants
from nihonto_search.search.url_query import detect_url_query
from nihonto_search.search.vocabulary import (
    CATEGORY_ITEM_TYPES,
    PROVINCE_SEARCH_VARIANTS,
    expand_certifications,
    item_type_filter_values,
)

logger = structlog.get_logger(__name__)

# Columns matched by substring in the CJK and artisan-name branches
TEXT_SEARCH_FIELDS: tuple[str, ...] = (
    "title",
    "title_en",
    "description",
    "description_en",
    "smith",
    "tosogu_maker",
    "school",
    "tosogu_school",
    "province",
    "era",
    "mei_type",
)


class ResolutionStrategy(str, Enum):
    URL = "url"
    ARTISAN_CODE = "artisan_code"
    CJK = "cjk"
    ROMAJI_FTS = "romaji_fts"
    NONE = "none"


class BrowseParams(BaseModel):
    """Caller-supplied browse request, already split and typed."""
    tab: Tab = Tab.AVAILABLE
    category: Category = Category.ALL
    item_types: list[str] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    schools: list[str] = Field(default_factory=list)
    dealers: list[int] = Field(default_factory=list)
    historical_periods: list[str] = Field(default_factory=list)
    signature_statuses: list[str] = Field(default_factory=list)
    ask_only: bool = False
    price_min: int | None = None
    price_max: int | None = None
    artisan: str | None = None
    query: str | None = None
    sort: SortMode = SortMode.NEWEST
    page: int = 1
    limit: int = settings.DEFAULT_PAGE_SIZE
    offset: int | None = None


class CompileContext(NamedTuple):
    """Viewer-dependent inputs to the gating stages."""
    is_admin: bool = False
    delay_cutoff: datetime | None = None
    min_price_jpy: int = settings.MIN_PRICE_JPY
    known_domains: tuple[str, ...] | None = None


class SortKey(NamedTuple):
    """
    One ORDER BY term. `field` is a listing column or one of the derived keys
    "has_price" (price_jpy IS NOT NULL) and "is_initial_import" (null → false).
    """
    field: str
    descending: bool = False
    nulls_last: bool = True


class FreeTextPlan(NamedTuple):
    """Outcome of the text stages that does not depend on artisan lookup."""
    extracted: ExtractedFilters | None
    numeric_filters: list[NumericFilter]
    residual_words: list[str]
    dropped_words: list[str]
    artisan_code: str | None
    words_to_resolve: list[str]
    strategy: ResolutionStrategy


class CompileState(NamedTuple):
    params: BrowseParams
    context: CompileContext
    predicates: PredicateSet
    artisan_codes: tuple[str, ...]
    url_key: str | None = None
    skip_category_gating: bool = False
    plan: FreeTextPlan | None = None
    strategy: ResolutionStrategy = ResolutionStrategy.NONE


class CompiledQuery(NamedTuple):
    predicates: PredicateSet
    sort: list[SortKey]
    offset: int
    limit: int
    page: int
    strategy: ResolutionStrategy
    url_key: str | None
    extracted: ExtractedFilters | None
    numeric_filters: list[NumericFilter]
    residual_words: list[str]
    dropped_words: list[str]
    apply_dealer_diversity: bool

    @property
    def is_url_search(self) -> bool:
        return self.url_key is not None


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def clamp_pagination(
    page: int | None,
    limit: int | None,
    offset: int | None = None,
) -> tuple[int, int, int]:
    """
    Clamp paging inputs instead of rejecting them.

    Returns:
        (page, limit, offset). An explicit offset wins over the page-derived
        one; page stays within 1..MAX_PAGE and limit within 1..MAX_PAGE_SIZE.
    """
    safe_limit = limit if limit and limit > 0 else settings.DEFAULT_PAGE_SIZE
    safe_limit = min(safe_limit, settings.MAX_PAGE_SIZE)

    safe_page = page if page and page > 0 else 1
    safe_page = min(safe_page, settings.MAX_PAGE)

    if offset is not None and offset >= 0:
        return safe_page, safe_limit, offset
    return safe_page, safe_limit, (safe_page - 1) * safe_limit


# ---------------------------------------------------------------------------
# Free-text planning
# ---------------------------------------------------------------------------

def _searchable_query(raw: str | None) -> str | None:
    if not raw:
        return None
    text = raw.strip()
    return text if len(text) >= settings.MIN_QUERY_LENGTH else None


def plan_free_text(raw_query: str | None) -> FreeTextPlan:
    """
    Run semantic and numeric extraction and pick the residual-word branch.

    `words_to_resolve` is non-empty only for the romaji branch: those words
    should be sent to the artisan registry before compile_query().
    """
    text = _searchable_query(raw_query)
    if text is None:
        return FreeTextPlan(None, [], [], [], None, [], ResolutionStrategy.NONE)

    semantic = parse_semantic_query(text)
    numeric = parse_numeric_filters(" ".join(semantic.remaining_terms))
    words = numeric.text_words

    artisan_code = find_artisan_code(words)
    other_words = [w for w in words if w != artisan_code] if artisan_code else words

    if artisan_code:
        strategy = ResolutionStrategy.ARTISAN_CODE
    elif not other_words:
        strategy = ResolutionStrategy.NONE
    elif any_contains_cjk(other_words):
        strategy = ResolutionStrategy.CJK
    else:
        strategy = ResolutionStrategy.ROMAJI_FTS

    words_to_resolve: list[str] = []
    if other_words and not any_contains_cjk(other_words):
        words_to_resolve = [expand_aliases(w)[0] for w in other_words]

    return FreeTextPlan(
        extracted=semantic.extracted_filters,
        numeric_filters=numeric.filters,
        residual_words=words,
        dropped_words=numeric.dropped,
        artisan_code=artisan_code,
        words_to_resolve=words_to_resolve,
        strategy=strategy,
    )


def artisan_lookup_words(params: BrowseParams, context: CompileContext | None = None) -> list[str]:
    """Words the caller should resolve through the artisan registry, if any."""
    known_domains = context.known_domains if context else None
    if detect_url_query(params.query, known_domains) is not None:
        return []
    return plan_free_text(params.query).words_to_resolve


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def apply_url_short_circuit(state: CompileState) -> CompileState:
    url_key = detect_url_query(state.params.query, state.context.known_domains)
    if url_key is None:
        return state
    return state._replace(
        url_key=url_key,
        strategy=ResolutionStrategy.URL,
        predicates=state.predicates.add(Dimension.URL, Substring("url", url_key)),
    )


def apply_status(state: CompileState) -> CompileState:
    if state.url_key is not None:
        return state
    tab = state.params.tab
    if tab == Tab.AVAILABLE:
        predicate = any_of(
            Eq("status", ListingStatus.AVAILABLE.value),
            Eq("is_available", True),
        )
    elif tab == Tab.SOLD:
        predicate = any_of(
            InSet("status", (ListingStatus.SOLD.value, ListingStatus.PRESUMED_SOLD.value)),
            Eq("is_sold", True),
        )
    else:
        return state
    return state._replace(predicates=state.predicates.add(Dimension.STATUS, predicate))


def apply_delay_gate(state: CompileState) -> CompileState:
    cutoff = state.context.delay_cutoff
    if cutoff is None:
        return state
    return state._replace(
        predicates=state.predicates.add(
            Dimension.DELAY, Range("first_seen_at", ComparisonOp.LTE, cutoff)
        )
    )


def apply_min_price(state: CompileState) -> CompileState:
    minimum = state.context.min_price_jpy
    if state.url_key is not None or minimum <= 0:
        return state
    predicate = any_of(
        IsNull("price_value"),
        Range("price_jpy", ComparisonOp.GTE, Decimal(minimum)),
    )
    return state._replace(predicates=state.predicates.add(Dimension.MIN_PRICE, predicate))


def apply_collectibility(state: CompileState) -> CompileState:
    predicates = state.predicates
    if state.url_key is None and not state.context.is_admin:
        excluded = InSet("item_type", tuple(settings.EXCLUDED_ITEM_TYPES), case_insensitive=True)
        predicates = predicates.add(
            Dimension.COLLECTIBLE, any_of(IsNull("item_type"), Not(excluded))
        )
    if not state.context.is_admin:
        predicates = predicates.add(Dimension.ADMIN_HIDDEN, Eq("admin_hidden", False))
    return state._replace(predicates=predicates)


def apply_item_type_gating(state: CompileState) -> CompileState:
    params = state.params
    if state.url_key is not None:
        return state
    if find_artisan_code((params.query or "").split()) is not None:
        logger.debug("category_gating_skipped", reason="artisan_code_token", source="compiler")
        return state._replace(skip_category_gating=True)

    if params.item_types:
        types = item_type_filter_values(params.item_types)
    elif params.category != Category.ALL:
        types = CATEGORY_ITEM_TYPES[params.category]
    else:
        return state
    return state._replace(
        predicates=state.predicates.add(
            Dimension.ITEM_TYPE, InSet("item_type", types, case_insensitive=True)
        )
    )


def apply_structured_filters(state: CompileState) -> CompileState:
    if state.url_key is not None:
        return state
    params = state.params
    predicates = state.predicates

    if params.ask_only:
        predicates = predicates.add(Dimension.ASK, IsNull("price_value"))

    bounds = []
    if params.price_min is not None:
        bounds.append(Range("price_jpy", ComparisonOp.GTE, Decimal(params.price_min)))
    if params.price_max is not None:
        bounds.append(Range("price_jpy", ComparisonOp.LTE, Decimal(params.price_max)))
    if bounds:
        predicates = predicates.add(
            Dimension.PRICE_RANGE, any_of(IsNull("price_value"), all_of(*bounds))
        )

    if params.certifications:
        predicates = predicates.add(
            Dimension.CERTIFICATION,
            InSet("cert_type", tuple(expand_certifications(params.certifications))),
        )

    if params.schools:
        predicates = predicates.add(
            Dimension.SCHOOL, substring_any(("school", "tosogu_school"), params.schools)
        )

    if params.dealers:
        predicates = predicates.add(Dimension.DEALER, InSet("dealer_id", tuple(params.dealers)))

    if params.historical_periods:
        predicates = predicates.add(
            Dimension.PERIOD, InSet("historical_period", tuple(params.historical_periods))
        )

    if params.signature_statuses:
        predicates = predicates.add(
            Dimension.SIGNATURE, InSet("signature_status", tuple(params.signature_statuses))
        )

    if params.artisan:
        predicates = predicates.add(Dimension.ARTISAN, Substring("artisan_id", params.artisan))

    return state._replace(predicates=predicates)


def _apply_extracted(state: CompileState, extracted: ExtractedFilters) -> PredicateSet:
    """Extracted filters for dimensions the caller left unset."""
    params = state.params
    predicates = state.predicates

    if extracted.certifications and not predicates.has(Dimension.CERTIFICATION):
        predicates = predicates.add(
            Dimension.CERTIFICATION,
            InSet("cert_type", tuple(expand_certifications(extracted.certifications))),
        )

    if extracted.item_types and not params.item_types and params.category == Category.ALL:
        predicates = predicates.add(
            Dimension.ITEM_TYPE,
            InSet("item_type", item_type_filter_values(extracted.item_types), case_insensitive=True),
        )

    if extracted.signature_statuses and not predicates.has(Dimension.SIGNATURE):
        predicates = predicates.add(
            Dimension.SIGNATURE,
            InSet("signature_status", tuple(s.value for s in extracted.signature_statuses)),
        )

    if extracted.provinces and not params.schools:
        variants: list[str] = []
        for province in extracted.provinces:
            for variant in PROVINCE_SEARCH_VARIANTS[province]:
                if variant not in variants:
                    variants.append(variant)
        predicates = predicates.add(
            Dimension.PROVINCE, substring_any(("province", "school", "tosogu_school"), variants)
        )

    return predicates


def apply_free_text(state: CompileState) -> CompileState:
    if state.url_key is not None:
        return state

    plan = plan_free_text(state.params.query)
    if plan.extracted is None:
        return state._replace(plan=plan)

    predicates = _apply_extracted(state, plan.extracted)

    for numeric in plan.numeric_filters:
        predicates = predicates.add(
            Dimension.NUMERIC, Range(numeric.field, numeric.op, numeric.value)
        )

    if plan.artisan_code:
        predicates = predicates.add(Dimension.TEXT, Substring("artisan_id", plan.artisan_code))

    words = [w for w in plan.residual_words if w != plan.artisan_code]
    strategy = plan.strategy

    if words and any_contains_cjk(words):
        for word in words:
            variants = get_search_variants(word)
            predicates = predicates.add(Dimension.TEXT, substring_any(TEXT_SEARCH_FIELDS, variants))
        if strategy != ResolutionStrategy.ARTISAN_CODE:
            strategy = ResolutionStrategy.CJK

    elif words and state.artisan_codes:
        code_matches = [Eq("artisan_id", code) for code in state.artisan_codes]
        for word in words:
            aliases = expand_aliases(word)
            field_matches = [Substring(f, a) for a in aliases for f in TEXT_SEARCH_FIELDS]
            predicates = predicates.add(Dimension.TEXT, any_of(*field_matches, *code_matches))
        strategy = ResolutionStrategy.ARTISAN_CODE
        logger.debug(
            "artisan_branch_selected",
            words=words,
            codes=list(state.artisan_codes),
            source="compiler",
        )

    elif words:
        fts = build_fts_query(" ".join(words))
        if not fts.is_empty:
            predicates = predicates.add(
                Dimension.TEXT,
                FullText(fts.tsquery, tuple(fts.terms), TEXT_SEARCH_FIELDS),
            )

    return state._replace(predicates=predicates, plan=plan, strategy=strategy)


PIPELINE = (
    apply_url_short_circuit,
    apply_status,
    apply_delay_gate,
    apply_min_price,
    apply_collectibility,
    apply_item_type_gating,
    apply_structured_filters,
    apply_free_text,
)


# ---------------------------------------------------------------------------
# Sort
# ---------------------------------------------------------------------------

def build_sort(sort: SortMode) -> list[SortKey]:
    """
    ORDER BY terms for a sort mode. `id` is always the final tiebreaker so
    pages never overlap.
    """
    if sort == SortMode.PRICE_ASC:
        return [SortKey("has_price", descending=True), SortKey("price_jpy"), SortKey("id")]
    if sort == SortMode.PRICE_DESC:
        return [
            SortKey("has_price", descending=True),
            SortKey("price_jpy", descending=True),
            SortKey("id"),
        ]
    if sort == SortMode.FEATURED:
        return [SortKey("featured_score", descending=True), SortKey("id", descending=True)]
    if sort == SortMode.NAME:
        return [SortKey("title"), SortKey("id")]
    return [
        SortKey("is_initial_import"),
        SortKey("first_seen_at", descending=True),
        SortKey("id", descending=True),
    ]


def parse_sort(raw: str | None) -> SortMode:
    """Accepts "recent" as an alias for newest; unknown values fall back to newest."""
    if not raw or raw == "recent":
        return SortMode.NEWEST
    try:
        return SortMode(raw)
    except ValueError:
        return SortMode.NEWEST


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def compile_query(
    params: BrowseParams,
    context: CompileContext | None = None,
    artisan_codes: list[str] | tuple[str, ...] = (),
) -> CompiledQuery:
    """
    Compile a browse request into a predicate set, sort and window.

    Args:
        params: Browse parameters.
        context: Viewer gating inputs (admin flag, delay cutoff).
        artisan_codes: Codes resolved for plan_free_text(params.query).words_to_resolve.

    Returns:
        CompiledQuery.
    """
    state = CompileState(
        params=params,
        context=context or CompileContext(),
        predicates=PredicateSet(),
        artisan_codes=tuple(artisan_codes),
    )
    for stage in PIPELINE:
        state = stage(state)

    page, limit, offset = clamp_pagination(params.page, params.limit, params.offset)
    plan = state.plan

    compiled = CompiledQuery(
        predicates=state.predicates,
        sort=build_sort(params.sort),
        offset=offset,
        limit=limit,
        page=page,
        strategy=state.strategy,
        url_key=state.url_key,
        extracted=plan.extracted if plan else None,
        numeric_filters=plan.numeric_filters if plan else [],
        residual_words=plan.residual_words if plan else [],
        dropped_words=plan.dropped_words if plan else [],
        apply_dealer_diversity=params.sort == SortMode.FEATURED and len(params.dealers) != 1,
    )

    logger.debug(
        "query_compiled",
        strategy=compiled.strategy.value,
        dimensions=[d.value for d in compiled.predicates.dimensions()],
        sort=params.sort.value,
        offset=offset,
        limit=limit,
        source="compiler",
    )
    return compiled
