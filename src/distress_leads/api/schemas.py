"""
Pydantic Schemas for API Request/Response Models

These schemas define the JSON structure for API endpoints. Inbound push and
webhook bodies live in ``models/ingest.py``.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthCheck(BaseModel):
    """Health check response."""
    status: str
    version: str
    database: str
    timestamp: datetime


class PropertySummary(BaseModel):
    """Property fields shown on a lead."""
    id: int
    apn: str
    county: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    owner_name: Optional[str] = None
    property_type: Optional[str] = None
    estimated_value: Optional[float] = None
    equity_percent: Optional[float] = None
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LeadListItem(BaseModel):
    """Lead for list views."""
    id: int
    property_id: int
    status: str
    priority: int
    source: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    assigned_to: Optional[str] = None
    lock_version: int

    class Config:
        from_attributes = True


class LeadDetail(LeadListItem):
    """Lead with its property."""
    notes: Optional[str] = None
    promoted_at: Optional[datetime] = None
    ghost_mode: bool = False
    created_at: datetime
    updated_at: datetime
    property: PropertySummary


class LeadStatusRequest(BaseModel):
    """Status change and/or claim."""
    lead_id: int
    actor_id: str
    status: Optional[str] = None
    assigned_to: Optional[str] = None
    lock_version: Optional[int] = Field(None, description="Version last read by the caller")
    ghost_mode: bool = False


class LeadStatusResponse(BaseModel):
    success: bool = True
    lead_id: int
    status: str
    assigned_to: Optional[str] = None
    lock_version: int


class PropertyUpdateRequest(BaseModel):
    """Manual correction from the lead file editor."""
    property_id: int
    lead_id: Optional[int] = None
    actor_id: str = "system"
    fields: Dict[str, Any] = Field(default_factory=dict)


class PropertyUpdateResponse(BaseModel):
    success: bool = True
    property: PropertySummary
    fields_changed: List[str]


class RangerPushResponse(BaseModel):
    success: bool = True
    property_id: int
    lead_id: Optional[int] = None
    heat_score: float
    blended_score: int
    predictive_score: int
    event_deduped: bool
    promotion: str


class PredictRequest(BaseModel):
    property_ids: List[int] = Field(default_factory=list)
    property_id: Optional[int] = None


class PredictionItem(BaseModel):
    property_id: int
    predictive_score: int
    days_until_distress: int
    confidence: int
    label: str
    blended_heat_score: Optional[int] = None


class PredictResponse(BaseModel):
    success: bool = True
    model_version: str
    scored: int
    errors: int
    predictions: List[PredictionItem]


class CalibrateRequest(BaseModel):
    """Partial weight schema; unspecified weights keep their defaults."""
    weights: Dict[str, Any]
    model_version: Optional[str] = None
    actor_id: str = "system"
    notes: Optional[str] = None


class CalibrateResponse(BaseModel):
    success: bool = True
    weight_set_id: int
    model_version: str
    weights: Dict[str, float]


class ReplayResponse(BaseModel):
    success: bool = True
    processed: int
    errors: int
