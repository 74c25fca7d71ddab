"""
Nihonto Search — Semantic Query Parser

Dictionary-based recognition of domain vocabulary embedded in free text:

    "juyo bizen katana mumei"  →  certifications=[Juyo]
                                   provinces=[Bizen]
                                   item_types=[katana]
                                   signature_statuses=[unsigned]
                                   remaining_terms=[]

Matching order:
1. Multi-word certification phrases (longest first)
2. Multi-word category phrases
3. Multi-word item-type phrases
4. Single words: certification → category → item type → signature → province

The parser reports everything it recognises. Whether an extracted filter is
applied (explicit filters win) is decided by the compiler.
"""

from __future__ import annotations

from typing import NamedTuple

import structlog

from nihonto_search.config import Category
from nihonto_search.search.cjk import contains_cjk
from nihonto_search.search.text_normalization import normalize
from nihonto_search.search.vocabulary import (
    CATEGORY_ITEM_TYPES,
    CATEGORY_QUERY_TERMS,
    CERT_QUERY_TERMS,
    ITEM_TYPE_QUERY_TERMS,
    PROVINCE_QUERY_TERMS,
    SIGNATURE_QUERY_TERMS,
    Certification,
    Province,
    SignatureStatus,
    VariantTable,
)

logger = structlog.get_logger(__name__)


class ExtractedFilters(NamedTuple):
    """Structured filters recognised in free text, deduplicated, in query order."""
    certifications: list[Certification]
    item_types: list[str]
    categories: list[Category]
    signature_statuses: list[SignatureStatus]
    provinces: list[Province]

    @property
    def is_empty(self) -> bool:
        return not any(self)


class ParsedSemanticQuery(NamedTuple):
    extracted_filters: ExtractedFilters
    remaining_terms: list[str]
    consumed_terms: list[str]


class _Collector:
    """Accumulates recognised values without duplicates."""

    def __init__(self) -> None:
        self.certifications: list[Certification] = []
        self.item_types: list[str] = []
        self.categories: list[Category] = []
        self.signature_statuses: list[SignatureStatus] = []
        self.provinces: list[Province] = []
        self.consumed: list[str] = []

    @staticmethod
    def _add(target: list, values) -> None:
        for value in values:
            if value not in target:
                target.append(value)

    def add_certification(self, cert: Certification) -> None:
        self._add(self.certifications, [cert])

    def add_category(self, category: Category) -> None:
        self._add(self.categories, [category])
        self._add(self.item_types, CATEGORY_ITEM_TYPES[category])

    def add_item_type(self, item_type: str) -> None:
        self._add(self.item_types, [item_type])

    def add_signature(self, status: SignatureStatus) -> None:
        self._add(self.signature_statuses, [status])

    def add_province(self, province: Province) -> None:
        self._add(self.provinces, [province])

    def build(self) -> ExtractedFilters:
        return ExtractedFilters(
            certifications=self.certifications,
            item_types=self.item_types,
            categories=self.categories,
            signature_statuses=self.signature_statuses,
            provinces=self.provinces,
        )


# ---------------------------------------------------------------------------
# Phrase extraction
# ---------------------------------------------------------------------------

def _extract_spaced_phrase(tokens: list[str], phrase: str) -> tuple[list[str], str] | None:
    """Find `phrase` as a run of whole tokens. Returns (tokens', matched text)."""
    width = len(phrase.split(" "))
    for start in range(len(tokens) - width + 1):
        window = tokens[start:start + width]
        if normalize(" ".join(window)) == phrase:
            return tokens[:start] + tokens[start + width:], " ".join(window)
    return None


def _extract_cjk_phrase(tokens: list[str], phrase: str) -> tuple[list[str], str] | None:
    """Find `phrase` inside a CJK token, splitting the token around it."""
    for index, token in enumerate(tokens):
        if not contains_cjk(token):
            continue
        folded = normalize(token)
        position = folded.find(phrase)
        if position < 0:
            continue
        pieces = [
            piece for piece in (folded[:position], folded[position + len(phrase):])
            if piece
        ]
        return tokens[:index] + pieces + tokens[index + 1:], phrase
    return None


def _extract_phrases(tokens: list[str], table: VariantTable, on_match) -> tuple[list[str], list[str]]:
    consumed: list[str] = []
    for phrase in table.phrases():
        while True:
            extract = _extract_spaced_phrase if " " in phrase else _extract_cjk_phrase
            result = extract(tokens, phrase)
            if result is None:
                break
            tokens, matched = result
            consumed.append(matched)
            on_match(table.lookup(phrase))
    return tokens, consumed


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_semantic_query(text: str) -> ParsedSemanticQuery:
    """
    Extract certifications, item types, signature statuses and provinces
    from free text.

    Args:
        text: Raw query text.

    Returns:
        ParsedSemanticQuery. Untouched tokens keep their original spelling in
        remaining_terms; a CJK token split around a recognised phrase
        contributes its normalized leftover pieces.

    Examples:
        >>> parsed = parse_semantic_query("tanto juyo")
        >>> parsed.extracted_filters.certifications
        [<Certification.JUYO: 'Juyo'>]
        >>> parsed.extracted_filters.item_types, parsed.remaining_terms
        (['tanto'], [])
    """
    collector = _Collector()
    tokens = (text or "").split()
    if not tokens:
        return ParsedSemanticQuery(collector.build(), [], [])

    for table, on_match in (
        (CERT_QUERY_TERMS, collector.add_certification),
        (CATEGORY_QUERY_TERMS, collector.add_category),
        (ITEM_TYPE_QUERY_TERMS, collector.add_item_type),
    ):
        tokens, consumed = _extract_phrases(tokens, table, on_match)
        collector.consumed.extend(consumed)

    single_word_tables = (
        (CERT_QUERY_TERMS, collector.add_certification),
        (CATEGORY_QUERY_TERMS, collector.add_category),
        (ITEM_TYPE_QUERY_TERMS, collector.add_item_type),
        (SIGNATURE_QUERY_TERMS, collector.add_signature),
        (PROVINCE_QUERY_TERMS, collector.add_province),
    )

    remaining: list[str] = []
    for token in tokens:
        for table, on_match in single_word_tables:
            canonical = table.lookup(token)
            if canonical is not None:
                on_match(canonical)
                collector.consumed.append(token)
                break
        else:
            remaining.append(token)

    extracted = collector.build()
    if not extracted.is_empty:
        logger.debug(
            "semantic_terms_extracted",
            certifications=[c.value for c in extracted.certifications],
            item_types=extracted.item_types,
            signature_statuses=[s.value for s in extracted.signature_statuses],
            provinces=[p.value for p in extracted.provinces],
            remaining=remaining,
            source="semantic_parser",
        )

    return ParsedSemanticQuery(
        extracted_filters=extracted,
        remaining_terms=remaining,
        consumed_terms=collector.consumed,
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def is_semantic_term(term: str) -> bool:
    """True if the term is recognised by any vocabulary table."""
    return any(
        term in table
        for table in (
            CERT_QUERY_TERMS,
            CATEGORY_QUERY_TERMS,
            ITEM_TYPE_QUERY_TERMS,
            SIGNATURE_QUERY_TERMS,
            PROVINCE_QUERY_TERMS,
        )
    )


def certification_key(term: str) -> Certification | None:
    return CERT_QUERY_TERMS.lookup(term)


def item_type_key(term: str) -> str | None:
    return ITEM_TYPE_QUERY_TERMS.lookup(term)


def category_types(term: str) -> list[str]:
    """Item types a category term expands to, or [] if not a category term."""
    category = CATEGORY_QUERY_TERMS.lookup(term)
    if category is None:
        return []
    return list(CATEGORY_ITEM_TYPES[category])


def province_key(term: str) -> Province | None:
    return PROVINCE_QUERY_TERMS.lookup(term)


def signature_status_key(term: str) -> SignatureStatus | None:
    return SIGNATURE_QUERY_TERMS.lookup(term)
