"""
Nihonto Search — CJK Detection

Selects the free-text resolution strategy. The 'simple' full-text
configuration cannot tokenize Japanese, so any CJK code point among the
residual words switches the whole residual resolution to substring matching.
"""

from __future__ import annotations

# Inclusive code point ranges
_CJK_RANGES: tuple[tuple[int, int], ...] = (
    (0x3040, 0x309F),  # Hiragana
    (0x30A0, 0x30FF),  # Katakana
    (0x3400, 0x4DBF),  # CJK Unified Ideographs Extension A
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0xF900, 0xFAFF),  # CJK Compatibility Ideographs
)


def is_cjk_char(char: str) -> bool:
    code_point = ord(char)
    return any(low <= code_point <= high for low, high in _CJK_RANGES)


def contains_cjk(text: str) -> bool:
    """True if any character of text is hiragana, katakana or kanji."""
    if not text:
        return False
    return any(is_cjk_char(char) for char in text)


def any_contains_cjk(words: list[str]) -> bool:
    return any(contains_cjk(word) for word in words)
