"""
Predictive Feature Weights

The predictive score is a weighted sum of nine feature sub-scores. Weights
are calibratable at runtime, but a schema is only accepted when it is a
proper convex combination: no negative weights and a total within
WEIGHT_SUM_TOLERANCE of 1.0.
"""
from typing import Any, Dict, Mapping

from pydantic import BaseModel, Field

from src.distress_leads.exceptions import ValidationError
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

WEIGHT_SUM_TOLERANCE = 0.005


class FeatureWeights(BaseModel):
    """Nine predictive feature weights (defaults sum to 1.0)."""

    owner_age: float = Field(0.11)
    equity_burn_rate: float = Field(0.16)
    absentee_duration: float = Field(0.09)
    tax_delinquency_trend: float = Field(0.15)
    life_event_probability: float = Field(0.18)
    signal_velocity: float = Field(0.10)
    ownership_stress: float = Field(0.08)
    market_exposure: float = Field(0.06)
    skip_trace_intelligence: float = Field(0.07)

    @property
    def total(self) -> float:
        return sum(self.model_dump().values())


DEFAULT_WEIGHTS = FeatureWeights()


def validate_weights(weights: FeatureWeights) -> FeatureWeights:
    """
    Reject weight schemas that are not a convex combination.

    Raises:
        ValidationError: If any weight is negative or the sum is off by
            more than WEIGHT_SUM_TOLERANCE
    """
    negatives = {name: value for name, value in weights.model_dump().items() if value < 0}
    if negatives:
        raise ValidationError("Weights must be non-negative", negative=negatives)

    total = weights.total
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ValidationError(
            f"Weights must sum to 1.0 (got {total:.4f})",
            weight_sum=round(total, 4),
        )
    return weights


def calibrate_weights(raw: Mapping[str, Any]) -> FeatureWeights:
    """
    Build and validate a weight schema from a partial mapping.

    Unspecified weights keep their defaults; unknown keys are rejected.

    Args:
        raw: Mapping of weight name to value

    Returns:
        Validated FeatureWeights

    Raises:
        ValidationError: If the schema is invalid
    """
    known = set(FeatureWeights.model_fields)
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValidationError("Unknown weight names", unknown=unknown)

    merged: Dict[str, float] = DEFAULT_WEIGHTS.model_dump()
    for name, value in raw.items():
        try:
            merged[name] = float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Weight {name} is not a number", weight=name) from e

    weights = validate_weights(FeatureWeights(**merged))
    logger.info("weights_calibrated", weight_sum=round(weights.total, 4))
    return weights
