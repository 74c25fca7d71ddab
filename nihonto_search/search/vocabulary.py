"""
Nihonto Search — Domain Vocabulary

Canonical values plus variant lists for every dimension the semantic parser
recognises and the compiler filters on:

- Certifications: query terms and the raw cert_type spellings found in
  scraped data (one shared table for every place a cert filter originates)
- Categories: query terms and the item types each category expands to
- Item types, signature statuses, provinces: query terms
- Provinces: the school/province spellings matched in listing columns

Every table is a VariantTable, validated at import time. A variant that
maps to two different canonical values raises VocabularyError, so an
inconsistent table fails on startup instead of matching unpredictably.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Generic, TypeVar

from nihonto_search.config import Category
from nihonto_search.search.cjk import contains_cjk
from nihonto_search.search.exceptions import VocabularyError
from nihonto_search.search.text_normalization import normalize

C = TypeVar("C")


class VariantTable(Generic[C]):
    """
    Canonical value → variants, with a validated reverse index.

    Variants are keyed through a key function (normalize() by default) so
    that lookups are insensitive to case, macrons and kanji form.
    """

    def __init__(
        self,
        name: str,
        entries: Mapping[C, Iterable[str]],
        key=normalize,
    ):
        self.name = name
        self._key = key
        self._variants: dict[C, tuple[str, ...]] = {}
        self._reverse: dict[str, C] = {}

        for canonical, variants in entries.items():
            ordered: list[str] = []
            for variant in variants:
                if variant not in ordered:
                    ordered.append(variant)
                k = key(variant)
                existing = self._reverse.get(k)
                if existing is not None and existing != canonical:
                    raise VocabularyError(
                        f"{name}: variant {variant!r} maps to both "
                        f"{existing!r} and {canonical!r}"
                    )
                self._reverse[k] = canonical
            self._variants[canonical] = tuple(ordered)

    def lookup(self, term: str) -> C | None:
        return self._reverse.get(self._key(term))

    def variants(self, canonical: C) -> tuple[str, ...]:
        return self._variants.get(canonical, ())

    def canonicals(self) -> list[C]:
        return list(self._variants)

    def keys(self) -> list[str]:
        return list(self._reverse)

    def phrases(self) -> list[str]:
        """
        Keys that must be matched as phrases before word splitting.

        Romaji keys containing a space, and CJK keys of two or more
        characters (Japanese queries are often written without spaces).
        Longest first so "tokubetsu juyo" wins over "juyo".
        """
        found = [
            k for k in self._reverse
            if " " in k or (contains_cjk(k) and len(k) >= 2)
        ]
        return sorted(found, key=len, reverse=True)

    def __contains__(self, term: str) -> bool:
        return self._key(term) in self._reverse


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------

class Certification(str, Enum):
    """Canonical certification keys used in filters and facets."""
    JUYO_BIJUTSUHIN = "Juyo Bijutsuhin"
    TOKUJU = "Tokuju"
    JUYO = "Juyo"
    TOKU_HOZON = "TokuHozon"
    HOZON = "Hozon"
    TOKU_KICHO = "TokuKicho"
    KICHO = "Kicho"
    NTHK = "NTHK"


# Raw cert_type spellings present in scraped listings. Matched exactly by
# filters and case-insensitively when folding facet values.
CERT_DB_VARIANTS: VariantTable[Certification] = VariantTable(
    "cert_db_variants",
    {
        Certification.JUYO_BIJUTSUHIN: ("Juyo Bijutsuhin", "JuBi", "jubi"),
        Certification.TOKUJU: ("Tokuju", "tokuju", "Tokubetsu Juyo", "tokubetsu_juyo"),
        Certification.JUYO: ("Juyo", "juyo"),
        Certification.TOKU_HOZON: ("TokuHozon", "Tokubetsu Hozon", "tokubetsu_hozon"),
        Certification.HOZON: ("Hozon", "hozon"),
        Certification.TOKU_KICHO: ("TokuKicho", "Tokubetsu Kicho", "tokubetsu_kicho"),
        Certification.KICHO: ("Kicho", "kicho"),
        Certification.NTHK: ("NTHK", "NTHK Kanteisho"),
    },
    key=lambda v: v.lower(),
)

CERT_QUERY_TERMS: VariantTable[Certification] = VariantTable(
    "cert_query_terms",
    {
        Certification.JUYO_BIJUTSUHIN: ("jubi", "juyo bijutsuhin", "重要美術品"),
        Certification.TOKUJU: (
            "tokuju", "tokubetsu juyo", "tokubetsujuyo", "toku juyo",
            "tokubetsu jūyō", "特別重要",
        ),
        Certification.JUYO: ("juyo", "jūyō", "juuyou", "juyou", "重要"),
        Certification.TOKU_HOZON: (
            "tokuho", "tokubetsu hozon", "tokubetsuhozon", "toku hozon",
            "tokubetsu hōzon", "特別保存",
        ),
        Certification.HOZON: ("hozon", "hōzon", "保存"),
        Certification.TOKU_KICHO: (
            "tokukicho", "tokubetsu kicho", "tokubetsukicho", "toku kicho",
            "特別貴重",
        ),
        Certification.KICHO: ("kicho", "kichō", "貴重"),
        Certification.NTHK: ("nthk", "nthk kanteisho"),
    },
)


def parse_certification(value: str) -> Certification | str:
    """
    Resolve a caller-supplied cert value to its canonical key.

    Accepts canonical keys ("Juyo"), raw spellings ("Tokubetsu Hozon") and
    query terms ("tokuho"). Unknown values pass through unchanged.
    """
    try:
        return Certification(value)
    except ValueError:
        pass
    return CERT_DB_VARIANTS.lookup(value) or CERT_QUERY_TERMS.lookup(value) or value


def expand_certifications(values: Iterable[Certification | str]) -> list[str]:
    """
    Expand cert filter values to every raw cert_type spelling.

    This is the only expansion used by the compiler, whether the filter came
    from the cert parameter or was extracted from the query text.
    """
    expanded: list[str] = []
    for value in values:
        canonical = parse_certification(value) if isinstance(value, str) else value
        variants = (
            CERT_DB_VARIANTS.variants(canonical)
            if isinstance(canonical, Certification)
            else (canonical,)
        )
        for variant in variants:
            if variant not in expanded:
                expanded.append(variant)
    return expanded


def fold_certification(raw: str) -> str:
    """Fold a raw cert_type value to its canonical facet key."""
    canonical = CERT_DB_VARIANTS.lookup(raw)
    return canonical.value if canonical is not None else raw


# ---------------------------------------------------------------------------
# Categories & item types
# ---------------------------------------------------------------------------

CATEGORY_ITEM_TYPES: dict[Category, tuple[str, ...]] = {
    Category.NIHONTO: (
        "katana", "wakizashi", "tanto", "tachi", "kodachi", "naginata",
        "naginata naoshi", "naginata-naoshi", "yari", "ken", "daisho", "sword",
    ),
    Category.TOSOGU: (
        "tsuba", "fuchi-kashira", "fuchi_kashira", "fuchi", "kashira",
        "kozuka", "kogatana", "kogai", "menuki", "futatokoro",
        "mitokoromono", "koshirae", "tosogu",
    ),
    Category.ARMOR: (
        "armor", "yoroi", "gusoku", "helmet", "kabuto", "menpo", "mengu",
        "kote", "suneate", "do", "tanegashima", "hinawaju",
    ),
}

CATEGORY_QUERY_TERMS: VariantTable[Category] = VariantTable(
    "category_query_terms",
    {
        Category.NIHONTO: (
            "nihonto", "nihon-to", "sword", "swords", "blade", "blades",
            "japanese sword", "japanese swords",
        ),
        Category.TOSOGU: (
            "tosogu", "tōsōgu", "fitting", "fittings", "sword fittings",
            "sword fitting", "kodogu", "kodōgu",
        ),
        Category.ARMOR: (
            "armor", "armour", "yoroi", "gusoku", "samurai armor",
            "samurai armour", "japanese armor", "japanese armour", "kacchu",
            "katchū",
        ),
    },
)

ITEM_TYPE_QUERY_TERMS: VariantTable[str] = VariantTable(
    "item_type_query_terms",
    {
        # Blades
        "katana": ("katana", "刀"),
        "wakizashi": ("wakizashi", "waki", "脇差"),
        "tanto": ("tanto", "tantō", "tantou", "短刀"),
        "tachi": ("tachi", "太刀"),
        "naginata": ("naginata", "nagi", "薙刀"),
        "yari": ("yari", "槍"),
        "ken": ("ken", "剣"),
        "kodachi": ("kodachi", "小太刀"),
        "daisho": ("daisho", "大小"),
        # Fittings
        "tsuba": ("tsuba", "tuba", "鍔"),
        "fuchi": ("fuchi",),
        "kashira": ("kashira",),
        "fuchi-kashira": (
            "fuchi-kashira", "fuchikashira", "fuchi kashira", "fuchi_kashira", "縁頭",
        ),
        "menuki": ("menuki", "目貫"),
        "kozuka": ("kozuka", "小柄"),
        "kogatana": ("kogatana",),
        "kogai": ("kogai", "笄"),
        "koshirae": ("koshirae", "拵"),
        "futatokoro": ("futatokoro", "二所物"),
        "mitokoromono": ("mitokoromono", "三所物"),
        # Armor
        "kabuto": ("kabuto", "兜"),
        "helmet": ("helmet",),
        "menpo": ("menpo",),
        "mengu": ("mengu",),
        "kote": ("kote",),
        "suneate": ("suneate",),
        "do": ("do", "dō"),
        "armor": ("甲冑",),
    },
)


def normalize_item_type(raw: str | None) -> str | None:
    """Lowercase a raw item_type and fold the fuchi_kashira spelling."""
    if not raw:
        return None
    lowered = raw.strip().lower()
    return "fuchi-kashira" if lowered == "fuchi_kashira" else lowered


def item_type_filter_values(types: Iterable[str]) -> tuple[str, ...]:
    """
    Lowercased item_type values to match for a type filter.

    "fuchi-kashira" also matches the "fuchi_kashira" spelling stored by
    some scrapers.
    """
    values: list[str] = []
    for item_type in types:
        folded = normalize_item_type(item_type)
        if folded is None:
            continue
        for value in (folded, "fuchi_kashira") if folded == "fuchi-kashira" else (folded,):
            if value not in values:
                values.append(value)
    return tuple(values)


# ---------------------------------------------------------------------------
# Signature status
# ---------------------------------------------------------------------------

class SignatureStatus(str, Enum):
    SIGNED = "signed"
    UNSIGNED = "unsigned"


SIGNATURE_QUERY_TERMS: VariantTable[SignatureStatus] = VariantTable(
    "signature_query_terms",
    {
        SignatureStatus.SIGNED: ("signed", "mei", "在銘"),
        SignatureStatus.UNSIGNED: ("unsigned", "mumei", "無銘"),
    },
)


# ---------------------------------------------------------------------------
# Provinces / traditions
# ---------------------------------------------------------------------------

class Province(str, Enum):
    SOSHU = "Soshu"
    BIZEN = "Bizen"
    YAMASHIRO = "Yamashiro"
    YAMATO = "Yamato"
    MINO = "Mino"
    HIZEN = "Hizen"
    SATSUMA = "Satsuma"
    ECHIZEN = "Echizen"
    KAGA = "Kaga"
    OWARI = "Owari"
    SETTSU = "Settsu"
    CHIKUZEN = "Chikuzen"
    TOSA = "Tosa"
    OMI = "Omi"
    MUTSU = "Mutsu"
    AWA = "Awa"
    BUNGO = "Bungo"
    IWAMI = "Iwami"
    SEKI = "Seki"


PROVINCE_QUERY_TERMS: VariantTable[Province] = VariantTable(
    "province_query_terms",
    {
        Province.SOSHU: ("soshu", "sagami", "相模"),
        Province.BIZEN: ("bizen", "bishu", "備前"),
        Province.YAMASHIRO: ("yamashiro", "山城"),
        Province.YAMATO: ("yamato", "大和"),
        Province.MINO: ("mino", "noshu", "美濃"),
        Province.HIZEN: ("hizen", "肥前"),
        Province.SATSUMA: ("satsuma", "薩摩"),
        Province.ECHIZEN: ("echizen", "越前"),
        Province.KAGA: ("kaga", "加賀"),
        Province.OWARI: ("owari", "尾張"),
        Province.SETTSU: ("settsu", "摂津"),
        Province.CHIKUZEN: ("chikuzen", "筑前"),
        Province.TOSA: ("tosa", "土佐"),
        Province.OMI: ("omi", "近江"),
        Province.MUTSU: ("mutsu", "oshu", "陸奥"),
        Province.AWA: ("awa", "阿波"),
        Province.BUNGO: ("bungo", "豊後"),
        Province.IWAMI: ("iwami", "石見"),
        Province.SEKI: ("seki",),
    },
)

# Spellings matched (substring, case-insensitive) against province / school
# columns. Not a VariantTable: Seki deliberately shares "Mino" with Mino.
PROVINCE_SEARCH_VARIANTS: dict[Province, tuple[str, ...]] = {
    Province.SOSHU: ("Soshu", "Sagami"),
    Province.BIZEN: ("Bizen", "Bishu"),
    Province.YAMASHIRO: ("Yamashiro",),
    Province.YAMATO: ("Yamato",),
    Province.MINO: ("Mino", "Noshu"),
    Province.HIZEN: ("Hizen",),
    Province.SATSUMA: ("Satsuma",),
    Province.ECHIZEN: ("Echizen",),
    Province.KAGA: ("Kaga",),
    Province.OWARI: ("Owari",),
    Province.SETTSU: ("Settsu",),
    Province.CHIKUZEN: ("Chikuzen",),
    Province.TOSA: ("Tosa",),
    Province.OMI: ("Omi",),
    Province.MUTSU: ("Mutsu", "Oshu"),
    Province.AWA: ("Awa",),
    Province.BUNGO: ("Bungo",),
    Province.IWAMI: ("Iwami",),
    Province.SEKI: ("Seki", "Mino"),
}


# ---------------------------------------------------------------------------
# Historical periods (chronological facet order)
# ---------------------------------------------------------------------------

HISTORICAL_PERIOD_ORDER: tuple[str, ...] = (
    "Heian", "Kamakura", "Nanbokucho", "Muromachi", "Momoyama",
    "Edo", "Meiji", "Taisho", "Showa", "Heisei", "Reiwa",
)
