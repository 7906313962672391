"""
Deterministic Scoring Models

Input and output contracts for the rule-based scorer.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class DistressSignal(BaseModel):
    """One active distress signal on a property."""

    type: str
    severity: float = Field(5, ge=0, le=10)
    days_since_event: float = Field(0, ge=0)


class OwnerFlags(BaseModel):
    """Owner situation flags that adjust motivation."""

    absentee: bool = False
    corporate: bool = False
    inherited: bool = False
    elderly: bool = False
    out_of_state: bool = False


class ScoringInput(BaseModel):
    signals: List[DistressSignal] = Field(default_factory=list)
    owner_flags: OwnerFlags = Field(default_factory=OwnerFlags)
    equity_percent: float = 0.0
    comp_ratio: float = 1.0
    historical_conversion_rate: float = Field(0.0, ge=0, le=1)


class ScoreFactor(BaseModel):
    """Named contribution, kept for explainability."""

    name: str
    value: float
    contribution: float


class ScoringOutput(BaseModel):
    """
    Deterministic score breakdown.

    Attributes:
        composite_score: 0-100 blend of motivation and deal scores
        motivation_score: Signal-driven willingness to sell (0-100)
        deal_score: Equity-driven deal quality (0-100)
        label: fire / hot / warm / cold
    """

    composite_score: int
    motivation_score: float
    deal_score: float
    severity_multiplier: float
    recency_decay: float
    stacking_bonus: float
    owner_factor_score: float
    equity_factor_score: float
    ai_boost: float
    label: str
    factors: List[ScoreFactor] = Field(default_factory=list)
    model_version: str
    explanation: Optional[str] = None
