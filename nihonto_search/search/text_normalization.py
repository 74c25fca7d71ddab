"""
Nihonto Search — Text Normalization

Canonicalizes query tokens for Japanese romanization and kanji:

- Macron removal (Gotō → goto)
- Lowercase + diacritic strip + whitespace collapse
- Shinjitai → kyūjitai kanji folding (the listings table stores the
  traditional forms used in smith signatures)
- Alias expansion for abbreviations and common misspellings

normalize() is idempotent: normalize(normalize(x)) == normalize(x).
"""

from __future__ import annotations

import re
import unicodedata

# ---------------------------------------------------------------------------
# Macrons
# ---------------------------------------------------------------------------

_MACRON_MAP: dict[str, str] = {
    "ā": "a", "Ā": "A",
    "ē": "e", "Ē": "E",
    "ī": "i", "Ī": "I",
    "ō": "o", "Ō": "O",
    "ū": "u", "Ū": "U",
}
_MACRON_RE = re.compile("[" + "".join(_MACRON_MAP) + "]")
_WHITESPACE_RE = re.compile(r"\s+")

# ---------------------------------------------------------------------------
# Kanji variants: shinjitai (simplified) → kyūjitai (traditional)
# ---------------------------------------------------------------------------

KANJI_VARIANTS: dict[str, str] = {
    "国": "國",  # kuni, extremely common in smith names
    "広": "廣",  # hiro
    "竜": "龍",
    "沢": "澤",
    "辺": "邊",
    "桜": "櫻",
    "円": "圓",
    "剣": "劍",
    "鉄": "鐵",
    "真": "眞",
    "斎": "齋",
    "関": "關",
    "万": "萬",
    "芸": "藝",
    "学": "學",
    "栄": "榮",
    "応": "應",
    "仏": "佛",
    "変": "變",
    "弁": "辯",
    "宝": "寶",
    "実": "實",
    "写": "寫",
    "当": "當",
    "帰": "歸",
    "旧": "舊",
    "権": "權",
    "歳": "歲",
    "浜": "濱",
    "画": "畫",
    "県": "縣",
    "経": "經",
    "継": "繼",
    "総": "總",
    "聴": "聽",
    "脳": "腦",
    "蔵": "藏",
    "覚": "覺",
    "観": "觀",
    "訳": "譯",
    "読": "讀",
    "豊": "豐",
    "辞": "辭",
    "転": "轉",
    "遅": "遲",
    "鋭": "銳",
    "闘": "鬪",
    "駅": "驛",
    "験": "驗",
    "黒": "黑",
}
_KANJI_TRANSLATION = str.maketrans(KANJI_VARIANTS)

# ---------------------------------------------------------------------------
# Search aliases (normalized key → alternative spellings)
# ---------------------------------------------------------------------------

SEARCH_ALIASES: dict[str, tuple[str, ...]] = {
    # Certification abbreviations
    "tokuju": ("tokubetsu juyo", "tokubetsu_juyo"),
    "tokuho": ("tokubetsu hozon", "tokubetsu_hozon"),
    "tokukicho": ("tokubetsu kicho", "tokubetsu_kicho"),
    # Item type abbreviations
    "waki": ("wakizashi",),
    "nagi": ("naginata",),
    "fuchikashira": ("fuchi_kashira", "fuchi-kashira", "fuchi kashira"),
    # Romanization variants (long vowel spelled with or without the extra vowel)
    "tuba": ("tsuba",),
    "tanto": ("tantou",),
    "tantou": ("tanto",),
    "juyo": ("juuyou", "juyou"),
    "kodogu": ("kodougu",),
}


def remove_macrons(text: str) -> str:
    """Convert long-vowel marks to plain ASCII vowels (Tōkyō → Tokyo)."""
    if not text:
        return ""
    return _MACRON_RE.sub(lambda m: _MACRON_MAP[m.group(0)], text)


def to_traditional_kanji(text: str) -> str:
    """Replace simplified kanji with their traditional forms."""
    if not text:
        return ""
    return text.translate(_KANJI_TRANSLATION)


def has_kanji_variants(text: str) -> bool:
    """True if the text contains a simplified kanji with a traditional form."""
    if not text:
        return False
    return any(char in KANJI_VARIANTS for char in text)


def normalize(text: str) -> str:
    """
    Normalize text for search matching.

    Examples:
        >>> normalize("  Gotō Katana  ")
        'goto katana'
        >>> normalize("国広")
        '國廣'
    """
    if not text:
        return ""

    result = remove_macrons(text).lower()
    result = unicodedata.normalize("NFD", result)
    result = "".join(char for char in result if not unicodedata.combining(char))
    result = unicodedata.normalize("NFC", result)
    result = to_traditional_kanji(result)
    return _WHITESPACE_RE.sub(" ", result).strip()


def expand_aliases(token: str) -> list[str]:
    """
    Return the normalized token followed by every known alias.

    Downstream matching ORs across the returned list. The first element is
    always normalize(token).

    Examples:
        >>> expand_aliases("Tokuju")
        ['tokuju', 'tokubetsu juyo', 'tokubetsu_juyo']
        >>> expand_aliases("katana")
        ['katana']
    """
    normalized = normalize(token)
    expanded = [normalized]
    for alias in SEARCH_ALIASES.get(normalized, ()):
        if alias not in expanded:
            expanded.append(alias)
    return expanded


def get_search_variants(text: str) -> list[str]:
    """
    Return the distinct forms of a query worth matching against raw columns.

    The normalized form folds kanji to traditional; dealers that write
    shinjitai in their listings are still matched by the lowercase original.
    """
    if not text:
        return []

    variants = [normalize(text)]
    if has_kanji_variants(text):
        plain = _WHITESPACE_RE.sub(" ", remove_macrons(text).lower()).strip()
        if plain not in variants:
            variants.append(plain)
    return variants
