"""
Nihonto Search — CJK Detection Tests
"""

from __future__ import annotations

import pytest

from nihonto_search.search.cjk import any_contains_cjk, contains_cjk, is_cjk_char


class TestContainsCjk:
    """Any hiragana, katakana or kanji code point selects the substring branch."""

    @pytest.mark.parametrize(
        "text",
        ["正宗", "かたな", "カタナ", "bizen 長船", "㐀", "豈"],
    )
    def test_cjk_detected(self, text: str) -> None:
        assert contains_cjk(text) is True

    @pytest.mark.parametrize("text", ["bizen katana", "Gotō", "", "70cm", "ｶﾀﾅ"])
    def test_non_cjk(self, text: str) -> None:
        """Half-width katakana lies outside the detected blocks."""
        assert contains_cjk(text) is False

    def test_range_boundaries(self) -> None:
        assert is_cjk_char(chr(0x3040)) is True
        assert is_cjk_char(chr(0x309F)) is True
        assert is_cjk_char(chr(0x9FFF)) is True
        assert is_cjk_char(chr(0x303F)) is False

    def test_any_contains_cjk(self) -> None:
        assert any_contains_cjk(["bizen", "長船"]) is True
        assert any_contains_cjk(["bizen", "osafune"]) is False
        assert any_contains_cjk([]) is False
