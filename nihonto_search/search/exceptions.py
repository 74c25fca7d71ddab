"""
Nihonto Search — Exception hierarchy for the search subsystem.
"""

from __future__ import annotations


class SearchError(Exception):
    """Base class for all search subsystem errors."""


class VocabularyError(SearchError):
    """A vocabulary table is inconsistent (e.g. one variant, two canonicals)."""


class ArtisanLookupError(SearchError):
    """The artisan registry could not be reached or returned garbage."""


class StoreError(SearchError):
    """The execution adapter failed to run a compiled query."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class StoreRangeError(StoreError):
    """The requested page lies outside the result set."""


# Engine error codes / message fragments that indicate an out-of-range page
_RANGE_ERROR_CODES = frozenset({"PGRST103", "22003"})
_RANGE_ERROR_FRAGMENTS = ("range", "offset")


def is_range_error(exc: BaseException) -> bool:
    """
    Return True if an engine error is a pagination range error.

    Range errors are client navigation artifacts (a stale page number after
    the result set shrank), not system faults.
    """
    if isinstance(exc, StoreRangeError):
        return True

    code = getattr(exc, "code", None) or getattr(exc, "pgcode", None)
    if code and str(code) in _RANGE_ERROR_CODES:
        return True

    message = str(exc).lower()
    return any(fragment in message for fragment in _RANGE_ERROR_FRAGMENTS)
