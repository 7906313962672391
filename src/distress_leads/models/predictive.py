"""
Predictive Scoring Models

Input/output contracts for the forward-looking distress model. Every field a
source may not supply is an explicit Optional; the model branches on None
rather than on falsy values.
"""
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ActiveSignal(BaseModel):
    type: str
    severity: float = Field(5, ge=0, le=10)
    days_since_event: int = Field(0, ge=0)


class HistoricalScore(BaseModel):
    composite: float
    created_at: date


class PredictiveInput(BaseModel):
    """
    Property facts consumed by the predictive scorer.

    ``as_of`` is the reference date for every date computation so the same
    input always produces the same output.
    """

    property_id: Optional[int] = None
    owner_name: str = "Unknown"
    ownership_years: Optional[float] = None
    last_sale_date: Optional[date] = None
    last_sale_price: Optional[float] = None
    estimated_value: Optional[float] = None
    equity_percent: Optional[float] = None
    previous_equity_percent: Optional[float] = None
    equity_delta_months: Optional[float] = None
    total_loan_balance: Optional[float] = None

    is_absentee: bool = False
    absentee_since_date: Optional[date] = None
    is_vacant: bool = False
    is_corporate_owner: bool = False
    is_free_clear: bool = False
    owner_age_known: Optional[int] = None

    delinquent_amount: Optional[float] = None
    previous_delinquent_amount: Optional[float] = None
    delinquent_years: int = 0
    tax_assessed_value: Optional[float] = None

    active_signals: List[ActiveSignal] = Field(default_factory=list)
    historical_scores: List[HistoricalScore] = Field(default_factory=list)

    foreclosure_stage: Optional[str] = None
    default_amount: Optional[float] = None

    has_phone: bool = False
    has_email: bool = False
    has_probate_signal: bool = False
    has_inherited_signal: bool = False

    as_of: date


class PredictiveFactor(BaseModel):
    name: str
    weight: float
    raw_value: float
    contribution: int


class PredictiveFeatures(BaseModel):
    owner_age_inference: Optional[int] = None
    equity_burn_rate: Optional[float] = None
    absentee_duration_days: Optional[int] = None
    tax_delinquency_trend: Optional[float] = None
    life_event_probability: Optional[float] = None
    signal_velocity: float = 0.0
    ownership_stress: float = 0.0
    market_exposure: float = 0.0
    skip_trace_score: Optional[int] = None
    heir_probability: Optional[float] = None
    contact_probability: Optional[float] = None


class PredictiveOutput(BaseModel):
    """
    Predictive score with the feature values and weights that produced it.

    Attributes:
        predictive_score: 0-100
        days_until_distress: Estimated days before distress becomes actionable (>= 7)
        confidence: 15-98, driven by how much input data was present
        label: imminent / likely / possible / unlikely
    """

    predictive_score: int
    days_until_distress: int
    confidence: int
    label: str
    model_version: str
    features: PredictiveFeatures
    factors: List[PredictiveFactor]
    weights: Dict[str, float]

    def factor(self, name: str) -> Optional[PredictiveFactor]:
        return next((f for f in self.factors if f.name == name), None)

    def summary(self) -> Dict[str, Any]:
        return {
            "predictive_score": self.predictive_score,
            "days_until_distress": self.days_until_distress,
            "confidence": self.confidence,
            "label": self.label,
        }
