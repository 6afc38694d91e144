"""
Search query construction for catalog items.

Queries are pure functions of the item so the same item always produces the
same keywords, which keeps result caching and test fixtures stable.
"""

import re
import unicodedata
from typing import Callable, Dict, List, Optional

from schemas.catalog import CatalogItem

# Marketplace keyword limit is 100; stay under it
MAX_QUERY_LENGTH = 98

SYMBOL_MAP = {
    "δ": "delta",
    "Δ": "delta",
}

CATEGORY_ALIASES: Dict[str, List[str]] = {
    "pokemon": ["Pokemon TCG", "Pokemon Trading Card Game"],
    "ygo": ["Yu-Gi-Oh TCG", "YuGiOh", "YGO"],
    "mtg": ["MTG", "Magic The Gathering"],
}

_POKEMON_ID = re.compile(r"^([A-Za-z0-9]+)[-:](.+)$")


def _clean(value) -> str:
    return "" if value is None else " ".join(str(value).split())


def _hash_number(number: Optional[str]) -> str:
    n = _clean(number)
    return f"#{n}" if n else ""


def pokemon_number(item: CatalogItem) -> Optional[str]:
    """Collector number, falling back to the id suffix ('sv4pt5-148' -> '148')"""
    if item.number:
        return item.number
    m = _POKEMON_ID.match(item.id or "")
    return m.group(2) if m else None


def _sports_parts(item: CatalogItem) -> List[str]:
    return [_clean(item.year), item.set_name, item.player, _hash_number(item.number), item.team, item.sport]


def _pokemon_parts(item: CatalogItem) -> List[str]:
    return [item.set_name, item.name, _hash_number(pokemon_number(item)), CATEGORY_ALIASES["pokemon"][0]]


def _ygo_parts(item: CatalogItem) -> List[str]:
    return [item.name, item.set_code, CATEGORY_ALIASES["ygo"][0]]


def _mtg_parts(item: CatalogItem) -> List[str]:
    return [item.set_name, item.name, item.number, CATEGORY_ALIASES["mtg"][0]]


def _default_parts(item: CatalogItem) -> List[str]:
    return [item.set_name, item.name or item.player, item.number]


TEMPLATES: Dict[str, Callable[[CatalogItem], List[str]]] = {
    "sports": _sports_parts,
    "pokemon": _pokemon_parts,
    "ygo": _ygo_parts,
    "mtg": _mtg_parts,
}


def join_parts(parts: List[Optional[str]]) -> str:
    """Join non-empty parts once each, collapse whitespace, trim to the keyword limit"""
    seen = set()
    out = []
    for part in parts:
        text = _clean(part)
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        out.append(text)
    return " ".join(out)[:MAX_QUERY_LENGTH].strip()


def build_query(item: CatalogItem) -> str:
    """Primary search string for an item"""
    template = TEMPLATES.get(item.category, _default_parts)
    return join_parts(template(item))


def to_ascii(text: str) -> str:
    """Fold diacritics and a few symbols so ASCII-only listings still match"""
    for symbol, replacement in SYMBOL_MAP.items():
        text = text.replace(symbol, replacement)
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fallback_queries(item: CatalogItem) -> List[str]:
    """
    Broader queries for items whose primary query finds too few listings:
    name + set + alias for every alias, then name + alias.
    """
    name = item.player if item.category == "sports" else item.name
    if not name:
        return []
    aliases = CATEGORY_ALIASES.get(item.category) or [item.sport or ""]
    set_ref = item.set_code or item.set_name

    queries = [join_parts([name, set_ref, alias]) for alias in aliases]
    queries += [join_parts([name, alias]) for alias in aliases]

    primary = build_query(item)
    unique = []
    for q in queries:
        if q and q != primary and q not in unique:
            unique.append(q)
    return unique


def query_variants(item: CatalogItem) -> List[str]:
    """Primary query (ASCII-folded first when it differs), then fallbacks"""
    primary = build_query(item)
    variants = []
    for q in [to_ascii(primary), primary] + fallback_queries(item):
        if q and q not in variants:
            variants.append(q)
    return variants
