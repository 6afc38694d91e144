"""
Pydantic schemas for catalog items and marketplace listings
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
import enum


class CatalogItem(BaseModel):
    """
    A catalog entry to price. Read-only input owned by the catalog tables.

    Only ``id`` and ``category`` are required; the display attributes that
    are present drive the search query and the title scoring.
    """

    id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)

    name: Optional[str] = None
    set_name: Optional[str] = None
    set_code: Optional[str] = None
    number: Optional[str] = None
    year: Optional[int] = None
    player: Optional[str] = None
    team: Optional[str] = None
    sport: Optional[str] = None

    @validator("id", "number", pre=True)
    def coerce_to_str(cls, v):
        """Catalog tables store ids and numbers as ints or text"""
        if v is None:
            return v
        return str(v).strip()

    @validator("name", "set_name", "set_code", "player", "team", "sport", pre=True)
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = " ".join(str(v).split())
        return v or None

    @validator("category")
    def normalize_category(cls, v):
        return v.strip().lower()

    @validator("year", pre=True)
    def parse_year(cls, v):
        if v is None or v == "":
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    class Config:
        frozen = True


class Listing(BaseModel):
    """One marketplace result: title plus landed price in minor units"""

    title: str = ""
    total_price_minor_units: int = Field(..., gt=0)
    url: Optional[str] = None

    @validator("title", pre=True)
    def clean_title(cls, v):
        return "" if v is None else str(v)


class RejectReason(str, enum.Enum):
    """Hard-reject classifications; not failures"""
    STOPWORD = "stopword"
    PRESALE = "presale"


class TitleScore(BaseModel):
    """Relevance verdict for a single listing title"""

    score: int = 0
    graded: bool = False
    reject_reason: Optional[RejectReason] = None


class ScoredListing(Listing):
    """Listing annotated with its relevance verdict"""

    score: int = 0
    graded: bool = False
    reject_reason: Optional[RejectReason] = None

    @classmethod
    def from_listing(cls, listing: Listing, verdict: TitleScore) -> "ScoredListing":
        return cls(
            title=listing.title,
            total_price_minor_units=listing.total_price_minor_units,
            url=listing.url,
            score=verdict.score,
            graded=verdict.graded,
            reject_reason=verdict.reject_reason,
        )
