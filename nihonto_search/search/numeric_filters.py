"""
Nihonto Search — Numeric Filter Extraction

Pulls bounded comparisons out of free text:

    "bizen cm>70 price<500000"  →  nagasa_cm > 70, price_value < 500000
                                    residual words: ["bizen"]

Only `<field-alias><op><number>` tokens are consumed. A bare number, an
unknown alias (width>10) or an unsupported operator (nagasa=70) stays a
residual word: a false negative is searched as text, a false positive would
silently constrain the wrong field.

Every input token ends up in exactly one of filters / text_words / dropped.
"""

from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import NamedTuple

import structlog

from nihonto_search.search.cjk import contains_cjk

logger = structlog.get_logger(__name__)


class ComparisonOp(str, Enum):
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


_OPERATORS: dict[str, ComparisonOp] = {
    ">": ComparisonOp.GT,
    ">=": ComparisonOp.GTE,
    "<": ComparisonOp.LT,
    "<=": ComparisonOp.LTE,
}

_FIELD_ALIASES: dict[str, str] = {
    "nagasa": "nagasa_cm",
    "cm": "nagasa_cm",
    "length": "nagasa_cm",
    "price": "price_value",
    "yen": "price_value",
    "jpy": "price_value",
}

_FILTER_RE = re.compile(
    r"^([a-z]+)(>=|<=|>|<)(\d+(?:\.\d+)?)$", re.IGNORECASE | re.ASCII
)


class NumericFilter(NamedTuple):
    """A single extracted comparison."""
    field: str
    op: ComparisonOp
    value: Decimal


class NumericParseResult(NamedTuple):
    """Partition of the input tokens."""
    filters: list[NumericFilter]
    text_words: list[str]
    dropped: list[str]


def _parse_token(token: str) -> NumericFilter | None:
    match = _FILTER_RE.match(token)
    if not match:
        return None
    alias, op, raw_value = match.groups()
    field = _FIELD_ALIASES.get(alias.lower())
    if field is None:
        return None
    return NumericFilter(field=field, op=_OPERATORS[op], value=Decimal(raw_value))


def parse_numeric_filters(text: str) -> NumericParseResult:
    """
    Split free text into numeric filters and residual words.

    Tokens are lowercased. Single-character non-CJK tokens carry no search
    signal and are reported in `dropped` rather than searched.

    Args:
        text: Free text, possibly already stripped of semantic terms.

    Returns:
        NumericParseResult(filters, text_words, dropped).

    Examples:
        >>> parse_numeric_filters("katana cm>70").filters
        [NumericFilter(field='nagasa_cm', op=<ComparisonOp.GT: 'gt'>, value=Decimal('70'))]
    """
    filters: list[NumericFilter] = []
    text_words: list[str] = []
    dropped: list[str] = []

    for token in (text or "").split():
        parsed = _parse_token(token)
        if parsed is not None:
            filters.append(parsed)
            continue

        word = token.lower()
        if len(word) < 2 and not contains_cjk(word):
            dropped.append(word)
            continue
        text_words.append(word)

    if filters:
        logger.debug(
            "numeric_filters_extracted",
            filters=[f"{f.field}.{f.op.value}.{f.value}" for f in filters],
            text_words=text_words,
            source="numeric_filters",
        )
    return NumericParseResult(filters=filters, text_words=text_words, dropped=dropped)


def is_numeric_filter(token: str) -> bool:
    return _parse_token(token) is not None


def supported_field_aliases() -> list[str]:
    return list(_FIELD_ALIASES)


def field_for_alias(alias: str) -> str | None:
    return _FIELD_ALIASES.get(alias.lower())
