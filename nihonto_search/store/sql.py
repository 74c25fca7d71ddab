"""
Nihonto Search — SQLAlchemy Execution Adapter

Translates a compiled PredicateSet and sort keys into SQLAlchemy
Core expressions and runs them:

- search(): count + one sorted page of listings joined with their dealer
- fetch_rows(): id-ordered column pages for facet and histogram aggregation
- dealer_names(), last_updated(): small lookups for the response

FullText predicates use `search_vector @@ to_tsquery('simple', …)` on
PostgreSQL. Other dialects get the equivalent AND of per-term substring
matches over the predicate's fields.

Every method opens its own session, so the browse service can run them
concurrently.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, NamedTuple

import structlog
from sqlalchemy import and_, case, false, func, not_, or_, select, true
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nihonto_search.models import Dealer, Listing
from nihonto_search.search.compiler import CompiledQuery, SortKey
from nihonto_search.search.exceptions import StoreError, StoreRangeError, is_range_error
from nihonto_search.search.numeric_filters import ComparisonOp
from nihonto_search.search.predicates import Predicate, PredicateSet

logger = structlog.get_logger(__name__)

_COLUMNS = Listing.__table__.c

# Columns returned for each listing in a result page
RESULT_COLUMNS: tuple[str, ...] = (
    "id", "url", "title", "title_en", "description", "description_en",
    "item_type", "item_category", "smith", "smith_romaji", "tosogu_maker",
    "school", "tosogu_school", "province", "era", "historical_period",
    "signature_status", "mei_type", "cert_type", "cert_session",
    "cert_organization", "nagasa_cm", "sori_cm", "height_cm", "price_value",
    "price_currency", "price_jpy", "status", "is_available", "is_sold",
    "first_seen_at", "last_scraped_at", "status_changed_at",
    "is_initial_import", "featured_score", "artisan_id", "artisan_confidence",
    "admin_hidden", "images", "dealer_id",
)


class SearchPage(NamedTuple):
    listings: list[dict[str, Any]]
    total: int


# ---------------------------------------------------------------------------
# Predicate translation
# ---------------------------------------------------------------------------

def _column(field: str):
    try:
        return _COLUMNS[field]
    except KeyError:
        raise ValueError(f"Unknown listing column: {field}") from None


def _like_pattern(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _compare(column, op: ComparisonOp, value: Any):
    if op == ComparisonOp.GT:
        return column > value
    if op == ComparisonOp.GTE:
        return column >= value
    if op == ComparisonOp.LT:
        return column < value
    return column <= value


def to_sql(predicate: Predicate, dialect: str = "postgresql"):
    """Translate one predicate into a SQLAlchemy boolean expression."""
    kind = predicate.kind
    if kind == "eq":
        return _column(predicate.field) == predicate.value
    if kind == "in":
        column = _column(predicate.field)
        if predicate.case_insensitive:
            return func.lower(column).in_([str(v).lower() for v in predicate.values])
        return column.in_(list(predicate.values))
    if kind == "substring":
        return _column(predicate.field).ilike(_like_pattern(predicate.value), escape="\\")
    if kind == "range":
        return _compare(_column(predicate.field), predicate.op, predicate.value)
    if kind == "is_null":
        return _column(predicate.field).is_(None)
    if kind == "fts":
        if dialect == "postgresql":
            return _COLUMNS.search_vector.op("@@")(func.to_tsquery("simple", predicate.tsquery))
        return and_(
            *(
                or_(*(_column(f).ilike(_like_pattern(term), escape="\\") for f in predicate.fields))
                for term in predicate.terms
            )
        )
    if kind == "any":
        return or_(*(to_sql(child, dialect) for child in predicate.children))
    if kind == "all":
        return and_(*(to_sql(child, dialect) for child in predicate.children))
    if kind == "not":
        return not_(to_sql(predicate.child, dialect))
    raise ValueError(f"Unsupported predicate kind: {kind}")


def where_clause(predicates: PredicateSet, dialect: str = "postgresql"):
    if not predicates.entries:
        return true()
    return and_(*(to_sql(p, dialect) for p in predicates.predicates()))


def order_by(sort: list[SortKey]) -> list:
    clauses = []
    for key in sort:
        if key.field == "has_price":
            expression = case((_COLUMNS.price_jpy.isnot(None), 1), else_=0)
        elif key.field == "is_initial_import":
            expression = func.coalesce(_COLUMNS.is_initial_import, false())
        else:
            expression = _column(key.field)
        clause = expression.desc() if key.descending else expression.asc()
        if key.nulls_last and key.field not in ("has_price", "is_initial_import", "id"):
            clause = clause.nulls_last()
        clauses.append(clause)
    return clauses


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

def _translate_error(exc: SQLAlchemyError, operation: str) -> StoreError:
    code = None
    detail = str(exc)
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
        # Driver message only: the wrapped statement text always contains OFFSET
        detail = str(exc.orig)
    error = StoreError(f"{operation} failed: {detail}", code=code)
    if is_range_error(error):
        return StoreRangeError(str(error), code=code)
    return error


class SqlListingStore:
    """
    Listing queries over an async SQLAlchemy session factory.

    Usage:
        store = SqlListingStore(session_factory)
        page = await store.search(compiled)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    def _dialect(self, session: AsyncSession) -> str:
        return session.bind.dialect.name if session.bind is not None else "postgresql"

    async def search(self, compiled: CompiledQuery) -> SearchPage:
        """Total match count and one sorted page of listings."""
        try:
            async with self.session_factory() as session:
                condition = where_clause(compiled.predicates, self._dialect(session))

                total = await session.scalar(
                    select(func.count()).select_from(Listing).where(condition)
                )

                columns = [_COLUMNS[name] for name in RESULT_COLUMNS]
                result = await session.execute(
                    select(*columns, Dealer.name.label("dealer_name"), Dealer.domain.label("dealer_domain"))
                    .join(Dealer, Listing.dealer_id == Dealer.id)
                    .where(condition)
                    .order_by(*order_by(compiled.sort))
                    .offset(compiled.offset)
                    .limit(compiled.limit)
                )
                rows = [self._listing_row(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise _translate_error(e, "search") from e

        logger.debug(
            "store_search_complete",
            total=total,
            returned=len(rows),
            offset=compiled.offset,
            source="store",
        )
        return SearchPage(listings=rows, total=int(total or 0))

    @staticmethod
    def _listing_row(mapping) -> dict[str, Any]:
        row = {name: mapping[name] for name in RESULT_COLUMNS}
        row["dealers"] = {
            "id": mapping["dealer_id"],
            "name": mapping["dealer_name"],
            "domain": mapping["dealer_domain"],
        }
        return row

    async def fetch_rows(
        self,
        predicates: PredicateSet,
        columns: list[str],
        offset: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        """One id-ordered page of the requested columns."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(*(_column(name) for name in columns))
                    .where(where_clause(predicates, self._dialect(session)))
                    .order_by(_COLUMNS.id)
                    .offset(offset)
                    .limit(limit)
                )
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise _translate_error(e, "fetch_rows") from e

    async def dealer_names(self, dealer_ids: list[int]) -> dict[int, str]:
        if not dealer_ids:
            return {}
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Dealer.id, Dealer.name).where(Dealer.id.in_(dealer_ids))
                )
                return {row.id: row.name for row in result}
        except SQLAlchemyError as e:
            raise _translate_error(e, "dealer_names") from e

    async def last_updated(self) -> datetime | None:
        """Most recent scrape time across all listings."""
        try:
            async with self.session_factory() as session:
                return await session.scalar(select(func.max(Listing.last_scraped_at)))
        except SQLAlchemyError as e:
            raise _translate_error(e, "last_updated") from e
