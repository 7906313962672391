"""
Inbound Ingest Payloads

Request bodies for the push and webhook endpoints. Fields are deliberately
loose here; required-field and range checks happen in the ingest service so
that a bad push is rejected with a 400 and a readable detail.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RangerPushPayload(BaseModel):
    """A pre-scored lead pushed by the field scouting tool."""

    external_id: Optional[str] = None
    apn: Optional[str] = None
    heat_score: Any = None
    tags: List[str] = Field(default_factory=list)
    breakdown: Dict[str, Any] = Field(default_factory=dict)
    address: Optional[str] = None
    owner_name: Optional[str] = None
    county: Optional[str] = None
    ghost_mode_used: bool = False
    pushed_at: Optional[str] = None
    audit_url: Optional[str] = None


class WebhookRecord(BaseModel):
    apn: Optional[str] = None
    county: Optional[str] = None
    address: Optional[str] = None
    owner_name: Optional[str] = None
    distress_type: Optional[str] = None
    raw_data: Dict[str, Any] = Field(default_factory=dict)


class WebhookPayload(BaseModel):
    """Batch of records from an external scraper or integration."""

    source: Optional[str] = None
    records: List[WebhookRecord] = Field(default_factory=list)
