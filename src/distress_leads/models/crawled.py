"""
Crawled Record Model

Pydantic model for a record produced by a harvesting module. Crawled records
are never persisted as-is; the crawler runner resolves them into properties
and distress events.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

DISTRESS_TYPES = {
    "probate",
    "pre_foreclosure",
    "tax_lien",
    "code_violation",
    "vacant",
    "divorce",
    "bankruptcy",
    "fsbo",
    "absentee",
    "inherited",
    "water_shutoff",
}


class CrawledRecord(BaseModel):
    """
    One distress observation harvested from a public page.

    Attributes:
        name: Owner / decedent / party name
        address: Street address when the page carries one
        county: County name (normalized later)
        date: Event date (YYYY-MM-DD)
        source: "<kind>:<source_id>", e.g. "court:spokane_superior"
        distress_type: One of DISTRESS_TYPES
        raw_data: Source-specific extras (case number, snippet, amount owed)
    """

    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    county: str
    date: str
    link: Optional[str] = None
    source: str
    distress_type: str
    case_type: Optional[str] = None
    raw_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("distress_type")
    @classmethod
    def validate_distress_type(cls, value: str) -> str:
        if value not in DISTRESS_TYPES:
            raise ValueError(f"Unknown distress type: {value}")
        return value

    @property
    def apn_hint(self) -> Optional[str]:
        """APN carried in raw_data by sources that publish one."""
        apn = self.raw_data.get("apn")
        return str(apn) if apn else None
