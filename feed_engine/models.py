"""Data models for the feed engine.

`RawRecord` is what the stream parser hands to the filter; it lives only for the
duration of a run. `Posting` mirrors a row of the `jobs` table. Extraction results
(`JobFacts` and friends) are plain value objects with documented defaults so that
downstream consumers never need a null branch for location.

This file uses Pydantic v2.
"""

from __future__ import annotations

import time
from typing import List, Literal, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, Field


EmploymentType = Literal["FULL_TIME", "PART_TIME", "CONTRACTOR", "INTERN", "TEMPORARY"]
SalaryUnit = Literal["YEAR", "MONTH", "WEEK", "DAY", "HOUR"]
Currency = Literal["EUR", "USD", "GBP", "CHF"]


class RawRecord(BaseModel):
    """One `<job>`/`<item>` element as found in the feed."""

    title: str = ""
    company: str = ""
    description: str = ""
    link: str = ""
    guid: str = ""
    pub_date: str = ""

    def identity(self, ordinal: int) -> str:
        """Stable dedup key: guid, else link, else a synthetic placeholder."""
        return self.guid or self.link or f"job-{ordinal}"

    def published_at(self) -> int:
        """Publication time in epoch seconds; now when absent or unparsable."""
        if self.pub_date:
            try:
                return int(date_parser.parse(self.pub_date).timestamp())
            except (ValueError, OverflowError):
                pass
        return int(time.time())


class EnrichedContent(BaseModel):
    short: str
    html: str
    tags: List[str] = Field(default_factory=list)
    used_ai: bool = False


class Posting(BaseModel):
    """A stored job posting (row of the `jobs` table)."""

    id: Optional[int] = None
    guid: str
    source: str = ""
    title: str
    company: str = ""
    description_html: str = ""
    description_short: str = ""
    url: str = ""
    published_at: int
    slug: str
    tags_csv: str = ""
    created_at: Optional[int] = None

    @property
    def tags(self) -> List[str]:
        return [t.strip() for t in self.tags_csv.split(",") if t.strip()]


class Tag(BaseModel):
    id: int
    name: str
    slug: str


class SalaryFact(BaseModel):
    currency: Currency
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    unit: SalaryUnit = "HOUR"


class LocationFact(BaseModel):
    country: str = "FR"
    city: Optional[str] = None


class JobFacts(BaseModel):
    """Structured facts inferred from a posting's free text."""

    employment_type: EmploymentType = "FULL_TIME"
    is_remote: bool = False
    salary: Optional[SalaryFact] = None
    experience_requirements: Optional[str] = None
    experience_in_place_of_education: bool = False
    location: LocationFact = Field(default_factory=LocationFact)


class Cursor(BaseModel):
    """Keyset pagination cursor: the last row's `(published_at, id)` pair."""

    published_at: int
    id: int

    @classmethod
    def parse(cls, value: str) -> "Cursor":
        """Parse the `"<published_at>-<id>"` text form."""
        parts = (value or "").split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"invalid cursor: {value!r}")
        pub, row_id = (int(p) for p in parts)
        if not pub or not row_id:
            raise ValueError(f"invalid cursor: {value!r}")
        return cls(published_at=pub, id=row_id)

    def __str__(self) -> str:
        return f"{self.published_at}-{self.id}"


class Page(BaseModel):
    rows: List[dict] = Field(default_factory=list)
    next_cursor: Optional[Cursor] = None


class RunStats(BaseModel):
    """Counters reported at the end of a pipeline run."""

    processed: int = 0
    matched: int = 0
    duplicates: int = 0
    irrelevant: int = 0
    ai_enhanced: int = 0
    fallback_used: int = 0
    inserted: int = 0
    conflicts: int = 0
    pruned: int = 0
    total: int = 0

    @property
    def skipped(self) -> int:
        return self.duplicates + self.irrelevant
