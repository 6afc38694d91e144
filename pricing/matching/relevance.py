"""
Title relevance scoring for marketplace listings.

A listing title is scored against the catalog item it was fetched for:

1. Hard rejects short-circuit to score 0 (multi-card lots, sealed product,
   reprints and proxies, presales).
2. Otherwise independent signals add up, each matched as a whole word and
   case-insensitively:

   ============================  ======
   player / name                  +30
   item number                    +35
   first word of the set name     +15
   year                           +10
   category / sport token          +6
   grading marker                  +6
   ============================  ======

The sum is not capped or normalized. A grading marker also flags the listing
as graded; that flag is independent of whether the listing is accepted.
"""

import re
from functools import lru_cache
from typing import Optional, Pattern

from schemas.catalog import CatalogItem, RejectReason, TitleScore
from pricing.matching.query_builder import pokemon_number

NAME_WEIGHT = 30
NUMBER_WEIGHT = 35
SET_WEIGHT = 15
YEAR_WEIGHT = 10
CATEGORY_WEIGHT = 6
GRADED_WEIGHT = 6

STOP_WORDS = re.compile(
    r"\b(lot|lots|box|case|blaster|hanger|retail|sealed|wax|break|team\s*break|nft|token|digital|"
    r"custom|proxy|reprint|rc\s*logo|mystery|bundle|code|online\s*code|coin|pin|deck|booster|pack|"
    r"vbox|collection|poster|figure|action\s*figure|funko)\b",
    re.IGNORECASE,
)
PRE_SALE = re.compile(r"\bpre[\s-]?sale\b|\bpre[\s-]?order\b", re.IGNORECASE)

GRADERS = r"(?:PSA|BGS|SGC|CGC|HGA|CSG|BECKETT)"
GRADE_VALUE = r"(?:10|9\.5|9|8\.5|8|7\.5|7|6\.5|6|5\.5|5|4|3|2|1\.5|1)"
GRADER = re.compile(rf"\b{GRADERS}\b", re.IGNORECASE)
# Grade numbers only count next to a grading company; "Mint 1st Edition" and
# "Near Mint 4/102" are raw condition words
GRADE_NUM = re.compile(rf"\b{GRADERS}\s*-?\s*{GRADE_VALUE}(?![\d./A-Za-z])", re.IGNORECASE)

# Token that marks the listing as belonging to the item's category
CATEGORY_TOKENS = {
    "pokemon": r"pok[eé]mon",
    "ygo": r"yu-?gi-?oh!?",
    "mtg": r"mtg|magic",
}

_SUB_SERIAL = re.compile(r"^[A-Z0-9]{1,6}-[A-Z]{0,3}\d{1,4}[A-Z]?$", re.IGNORECASE)
_FRACTION = re.compile(r"^(\w+)\s*/\s*(\w+)$")


def whole_word(text: str) -> str:
    """Pattern matching text only when not glued to other letters or digits"""
    return rf"(?<![A-Za-z0-9]){re.escape(text)}(?![A-Za-z0-9])"


@lru_cache(maxsize=4096)
def _compile(pattern: str) -> Pattern:
    return re.compile(pattern, re.IGNORECASE)


def _matches(text: Optional[str], title: str) -> bool:
    if not text:
        return False
    return bool(_compile(whole_word(text)).search(title))


def build_number_pattern(number: Optional[str]) -> Optional[Pattern]:
    """
    Per-item number expression.

    Accepts ``#N``, bare ``N``, fraction forms (``N/M`` when the item number
    is a fraction, and ``N/anything`` when it is not) and alphanumeric
    sub-serials such as ``SWSH-EN050``. Matching is boundary-exact, so item
    number 12 does not match ``#123``.
    """
    n = (number or "").strip().lstrip("#").strip()
    if not n:
        return None

    parts = []
    fraction = _FRACTION.match(n)
    if fraction:
        num, den = fraction.groups()
        parts.append(rf"(?<![A-Za-z0-9]){re.escape(num)}\s*/\s*{re.escape(den)}(?![A-Za-z0-9])")
        parts.append(rf"#\s*{re.escape(num)}(?![A-Za-z0-9])")
    else:
        parts.append(rf"#\s*{re.escape(n)}(?![A-Za-z0-9])")
        parts.append(whole_word(n))
        if _SUB_SERIAL.match(n):
            # Dashes are often dropped or spaced in titles: "SWSH EN050"
            loose = r"[\s-]?".join(re.escape(p) for p in n.split("-"))
            parts.append(rf"(?<![A-Za-z0-9]){loose}(?![A-Za-z0-9])")

    return _compile("(?:" + "|".join(parts) + ")")


def _item_number(item: CatalogItem) -> Optional[str]:
    if item.category == "pokemon":
        return pokemon_number(item)
    return item.number


def _category_pattern(item: CatalogItem) -> Optional[Pattern]:
    if item.sport:
        return _compile(whole_word(item.sport))
    token = CATEGORY_TOKENS.get(item.category)
    if token:
        return _compile(rf"(?<![A-Za-z0-9])(?:{token})(?![A-Za-z0-9])")
    return None


def is_graded(title: str) -> bool:
    return bool(GRADER.search(title) or GRADE_NUM.search(title))


def score_title(item: CatalogItem, title: Optional[str]) -> TitleScore:
    """Score one listing title against the item it was searched for"""
    t = title or ""

    if STOP_WORDS.search(t):
        return TitleScore(score=0, graded=False, reject_reason=RejectReason.STOPWORD)
    if PRE_SALE.search(t):
        return TitleScore(score=0, graded=False, reject_reason=RejectReason.PRESALE)

    score = 0

    if _matches(item.player or item.name, t):
        score += NAME_WEIGHT

    number_re = build_number_pattern(_item_number(item))
    if number_re is not None and number_re.search(t):
        score += NUMBER_WEIGHT

    if item.set_name:
        if _matches(item.set_name.split(" ")[0], t):
            score += SET_WEIGHT

    if item.year and _matches(str(item.year), t):
        score += YEAR_WEIGHT

    category_re = _category_pattern(item)
    if category_re is not None and category_re.search(t):
        score += CATEGORY_WEIGHT

    graded = is_graded(t)
    if graded:
        score += GRADED_WEIGHT

    return TitleScore(score=score, graded=graded, reject_reason=None)
