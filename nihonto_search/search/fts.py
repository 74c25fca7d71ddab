"""
Nihonto Search — Full-Text Query Builder

Builds PostgreSQL tsquery strings for the 'simple' configuration with word
boundary matching, so "rai" does not match "grained":

    bizen katana            →  bizen:* & katana:*
    "rai kunimitsu"         →  (rai <-> kunimitsu)
    "rai kunimitsu" tanto   →  (rai <-> kunimitsu) & tanto:*

Quoted phrases require adjacency; bare terms are prefix-matched.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from nihonto_search.search.text_normalization import normalize

_TSQUERY_SPECIAL_RE = re.compile(r"[&|!():<>\\*'\"]")
_PHRASE_RE = re.compile(r"[\"']([^\"']+)[\"']")
_WHITESPACE_RE = re.compile(r"\s+")

MIN_TERM_LENGTH: int = 2


class FtsQuery(NamedTuple):
    tsquery: str
    is_phrase_search: bool
    terms: list[str]

    @property
    def is_empty(self) -> bool:
        return not self.tsquery


def escape_for_tsquery(term: str) -> str:
    """Replace tsquery operator characters with spaces."""
    return _WHITESPACE_RE.sub(" ", _TSQUERY_SPECIAL_RE.sub(" ", term)).strip()


def extract_phrases(text: str) -> tuple[list[str], str]:
    """Split quoted phrases out of text. Returns (phrases, remaining text)."""
    phrases: list[str] = []
    for match in _PHRASE_RE.finditer(text):
        phrase = match.group(1).strip()
        if len(phrase) >= MIN_TERM_LENGTH:
            phrases.append(phrase)
    remaining = _PHRASE_RE.sub(" ", text)
    return phrases, _WHITESPACE_RE.sub(" ", remaining).strip()


def _terms(text: str, min_length: int) -> list[str]:
    escaped = escape_for_tsquery(normalize(text))
    return [term for term in escaped.split(" ") if len(term) >= min_length]


def build_phrase_query(phrase: str, min_length: int = MIN_TERM_LENGTH) -> str:
    terms = _terms(phrase, min_length)
    if not terms:
        return ""
    if len(terms) == 1:
        return terms[0]
    return "(" + " <-> ".join(terms) + ")"


def build_terms_query(
    text: str,
    prefix_match: bool = True,
    min_length: int = MIN_TERM_LENGTH,
) -> str:
    terms = _terms(text, min_length)
    if prefix_match:
        terms = [f"{term}:*" for term in terms]
    return " & ".join(terms)


def build_fts_query(
    text: str,
    prefix_match: bool = True,
    min_length: int = MIN_TERM_LENGTH,
) -> FtsQuery:
    """
    Build a tsquery from residual free text.

    Args:
        text: Residual words joined with spaces (may contain quoted phrases).
        prefix_match: Append :* to bare terms for typeahead matching.
        min_length: Terms shorter than this are dropped.

    Returns:
        FtsQuery; tsquery is "" when nothing searchable remains.

    Examples:
        >>> build_fts_query("bizen katana").tsquery
        'bizen:* & katana:*'
        >>> build_fts_query('"Rai Kunimitsu" tanto').tsquery
        '(rai <-> kunimitsu) & tanto:*'
    """
    if not text or len(text.strip()) < min_length:
        return FtsQuery(tsquery="", is_phrase_search=False, terms=[])

    phrases, remaining = extract_phrases(text.strip())
    parts: list[str] = []
    terms: list[str] = []

    for phrase in phrases:
        query = build_phrase_query(phrase, min_length)
        if query:
            parts.append(query)
            terms.append(normalize(phrase))

    if remaining:
        query = build_terms_query(remaining, prefix_match, min_length)
        if query:
            parts.append(query)
            terms.extend(_terms(remaining, min_length))

    return FtsQuery(
        tsquery=" & ".join(parts),
        is_phrase_search=bool(phrases),
        terms=terms,
    )
