"""
Predictive Distress Scoring

Forward-looking distress model. Nine engineered features are each mapped
to a 0-100 sub-score and combined with calibratable weights
(see scoring/weights.py) into:

- predictive score (0-100)
- days-until-distress estimate
- confidence (driven by how much input data was present)

Deterministic and replayable: all date arithmetic is relative to
``PredictiveInput.as_of``.
"""
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from src.distress_leads.models.predictive import (
    PredictiveFactor,
    PredictiveFeatures,
    PredictiveInput,
    PredictiveOutput,
)
from src.distress_leads.scoring.skip_trace import compute_skip_trace
from src.distress_leads.scoring.weights import DEFAULT_WEIGHTS, FeatureWeights, validate_weights
from src.distress_leads.utils.coercion import clamp
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

PREDICTIVE_MODEL_VERSION = "pred-v2.1"

# Annual filing rates per distress type (WA/ID county recorders)
LIFE_EVENT_BASE_RATES = {
    "probate": 0.035,
    "divorce": 0.025,
    "bankruptcy": 0.018,
    "pre_foreclosure": 0.022,
    "tax_lien": 0.040,
    "code_violation": 0.015,
    "inherited": 0.030,
}
DEFAULT_LIFE_EVENT_RATE = 0.01

AGE_DISTRESS_CURVE = [(80, 2.8), (70, 2.2), (60, 1.6), (50, 1.2), (40, 1.0), (0, 0.7)]

# (annual equity loss fraction, sub-score)
EQUITY_BURN_THRESHOLDS = [(0.20, 95), (0.15, 80), (0.10, 65), (0.05, 45), (0.02, 25), (0.00, 10)]

DAYS_UNTIL_DISTRESS_BANDS = [(90, 14), (80, 30), (70, 60), (60, 90), (50, 120), (40, 180), (25, 270)]

FIRST_TIME_BUYER_AGE = 33
DAYS_PER_MONTH = 30.44
DAYS_PER_YEAR = 365.25


def _days_between(start: Optional[date], as_of: date) -> Optional[int]:
    if start is None:
        return None
    return max((as_of - start).days, 0)


def _stage(input: PredictiveInput) -> str:
    return (input.foreclosure_stage or "").lower()


def infer_owner_age(input: PredictiveInput) -> Optional[int]:
    """Known age, else first-time-buyer age plus years owned. None for corporate owners."""
    if input.owner_age_known is not None:
        return input.owner_age_known
    if input.is_corporate_owner:
        return None

    if input.ownership_years is not None and input.ownership_years > 0:
        return int(clamp(round(FIRST_TIME_BUYER_AGE + input.ownership_years), 25, 100))

    if input.last_sale_date is not None:
        years_owned = input.as_of.year - input.last_sale_date.year
        if years_owned > 0:
            return int(clamp(FIRST_TIME_BUYER_AGE + years_owned, 25, 100))

    return None


def age_multiplier(age: Optional[int]) -> float:
    if age is None:
        return 1.0
    for min_age, multiplier in AGE_DISTRESS_CURVE:
        if age >= min_age:
            return multiplier
    return 1.0


def compute_equity_burn_rate(input: PredictiveInput) -> Optional[float]:
    """
    Annual equity loss as a fraction (0.10 = 10%/yr).

    Uses the two-point equity history when available, else infers it from
    loan balance against value and last sale price.
    """
    if (
        input.equity_percent is not None
        and input.previous_equity_percent is not None
        and input.equity_delta_months is not None
        and input.equity_delta_months > 0
    ):
        monthly_delta = (input.previous_equity_percent - input.equity_percent) / input.equity_delta_months
        return max(monthly_delta / 100 * 12, 0.0)

    if (
        input.total_loan_balance is not None
        and input.estimated_value is not None
        and input.estimated_value > 0
        and input.last_sale_price is not None
        and input.last_sale_date is not None
    ):
        current_equity = 1 - input.total_loan_balance / input.estimated_value
        if input.last_sale_price > 0:
            sale_equity = 1 - (input.total_loan_balance * 0.95) / input.last_sale_price
        else:
            sale_equity = current_equity
        months_since_sale = max((input.as_of - input.last_sale_date).days / DAYS_PER_MONTH, 1)
        return max((sale_equity - current_equity) / months_since_sale * 12, 0.0)

    return None


def equity_burn_score(rate: Optional[float]) -> int:
    if rate is None:
        return 20
    for threshold, score in EQUITY_BURN_THRESHOLDS:
        if rate >= threshold:
            return score
    return 5


def compute_absentee_duration(input: PredictiveInput) -> Optional[int]:
    if not input.is_absentee:
        return None
    if input.absentee_since_date is not None:
        return _days_between(input.absentee_since_date, input.as_of)
    if input.last_sale_date is not None:
        return _days_between(input.last_sale_date, input.as_of)
    return 365


def absentee_score(input: PredictiveInput, days: Optional[int]) -> int:
    if days is None:
        return 35 if input.is_absentee else 5
    return min(round(days / 365 * 30 + (25 if input.is_vacant else 0)), 100)


def compute_tax_delinquency_trend(input: PredictiveInput) -> Optional[float]:
    """Growth rate of the delinquent amount, or its size relative to value."""
    if input.delinquent_amount is None or input.delinquent_amount <= 0:
        return None
    if input.previous_delinquent_amount is not None and input.previous_delinquent_amount > 0:
        return (input.delinquent_amount - input.previous_delinquent_amount) / input.previous_delinquent_amount
    if input.tax_assessed_value is not None and input.tax_assessed_value > 0:
        return input.delinquent_amount / input.tax_assessed_value
    if input.estimated_value is not None and input.estimated_value > 0:
        return input.delinquent_amount / input.estimated_value
    return 0.05 * input.delinquent_years if input.delinquent_years > 0 else None


def tax_trend_score(input: PredictiveInput, trend: Optional[float]) -> int:
    if trend is None:
        return 40 if input.delinquent_amount is not None and input.delinquent_amount > 0 else 5
    if trend >= 0.50:
        return 95
    if trend >= 0.30:
        return 80
    if trend >= 0.15:
        return 60
    if trend >= 0.05:
        return 40
    if trend > 0:
        return 25
    return 10


def compute_life_event_probability(input: PredictiveInput, owner_age: Optional[int]) -> float:
    probability = 0.0

    for signal in input.active_signals:
        base_rate = LIFE_EVENT_BASE_RATES.get(signal.type, DEFAULT_LIFE_EVENT_RATE)
        if signal.days_since_event < 90:
            recency = 2.0
        elif signal.days_since_event < 180:
            recency = 1.5
        else:
            recency = 1.0
        if signal.severity >= 8:
            severity = 1.8
        elif signal.severity >= 5:
            severity = 1.3
        else:
            severity = 1.0
        probability += base_rate * recency * severity

    if owner_age is not None:
        if owner_age >= 75:
            probability += 0.12
        elif owner_age >= 65:
            probability += 0.06
        elif owner_age >= 55:
            probability += 0.03

    signal_count = len(input.active_signals)
    if signal_count >= 4:
        probability *= 2.0
    elif signal_count >= 3:
        probability *= 1.6
    elif signal_count >= 2:
        probability *= 1.3

    stage = _stage(input)
    if stage:
        if "auction" in stage or "sale" in stage:
            probability += 0.25
        elif "notice" in stage or "lis pendens" in stage:
            probability += 0.15
        else:
            probability += 0.08

    if input.default_amount is not None and input.default_amount > 0:
        if input.estimated_value is not None and input.estimated_value > 0:
            pressure = input.default_amount / input.estimated_value
        else:
            pressure = 0.05
        probability += min(pressure * 2, 0.20)

    return clamp(probability, 0.0, 1.0)


def compute_signal_velocity(input: PredictiveInput) -> float:
    """Share of signals in the last 90 days plus score trajectory."""
    if not input.active_signals:
        return 0.0

    recent = sum(1 for s in input.active_signals if s.days_since_event <= 90)
    ratio = recent / max(len(input.active_signals), 1)

    score_trend = 0.0
    if len(input.historical_scores) >= 2:
        ordered = sorted(input.historical_scores, key=lambda h: h.created_at)
        first, last = ordered[0].composite, ordered[-1].composite
        if last > first:
            score_trend = (last - first) / max(first, 1)

    return ratio * 3 + recent * 0.8 + score_trend * 2


def compute_ownership_stress(input: PredictiveInput) -> float:
    stress = 0
    if input.ownership_years is not None:
        if input.ownership_years > 20:
            stress += 20
        elif input.ownership_years > 10:
            stress += 10

    if input.equity_percent is not None:
        if input.equity_percent < 10:
            stress += 35
        elif input.equity_percent < 20:
            stress += 20
        elif input.equity_percent < 30:
            stress += 10

    if input.is_vacant and input.is_absentee:
        stress += 25
    elif input.is_vacant:
        stress += 15

    # free and clear yet still delinquent
    if input.is_free_clear and input.delinquent_amount is not None and input.delinquent_amount > 0:
        stress += 30

    return clamp(stress, 0, 100)


def compute_market_exposure(input: PredictiveInput) -> float:
    exposure = 0
    if input.estimated_value is not None:
        if input.estimated_value < 150_000:
            exposure += 25
        elif input.estimated_value < 250_000:
            exposure += 15
        elif input.estimated_value < 400_000:
            exposure += 8

    if input.last_sale_date is not None:
        years_since_sale = (input.as_of - input.last_sale_date).days / DAYS_PER_YEAR
        if years_since_sale > 15:
            exposure += 25
        elif years_since_sale > 10:
            exposure += 15
        elif years_since_sale > 5:
            exposure += 8

    signal_count = len(input.active_signals)
    if signal_count >= 3:
        exposure += 20
    elif signal_count >= 2:
        exposure += 10

    return clamp(exposure, 0, 100)


def estimate_days_until_distress(score: int, input: PredictiveInput) -> int:
    days = 365
    for min_score, band_days in DAYS_UNTIL_DISTRESS_BANDS:
        if score >= min_score:
            days = band_days
            break

    stage = _stage(input)
    if "auction" in stage or "sale" in stage:
        days = min(days, 14)
    elif "notice" in stage:
        days = min(days, 45)

    very_recent = sum(1 for s in input.active_signals if s.days_since_event <= 30)
    if very_recent >= 2:
        days = round(days * 0.6)
    elif very_recent >= 1:
        days = round(days * 0.8)

    return max(days, 7)


def compute_confidence(input: PredictiveInput) -> int:
    checks: List[Tuple[bool, int]] = [
        (input.owner_age_known is not None or input.ownership_years is not None, 12),
        (input.equity_percent is not None, 10),
        (input.previous_equity_percent is not None, 8),
        (input.estimated_value is not None, 10),
        (input.total_loan_balance is not None, 8),
        (input.last_sale_date is not None, 6),
        (input.last_sale_price is not None, 6),
        (input.is_absentee, 4),
        (input.delinquent_amount is not None and input.delinquent_amount > 0, 8),
        (len(input.active_signals) > 0, 10),
        (len(input.active_signals) >= 2, 6),
        (len(input.historical_scores) >= 2, 8),
        (input.foreclosure_stage is not None, 4),
    ]
    max_points = sum(weight for _, weight in checks)
    points = sum(weight for present, weight in checks if present)
    return int(clamp(round(points / max_points * 100), 15, 98))


def predictive_label(score: int) -> str:
    if score >= 80:
        return "imminent"
    if score >= 55:
        return "likely"
    if score >= 30:
        return "possible"
    return "unlikely"


def compute_predictive_score(
    input: PredictiveInput,
    weights: Optional[FeatureWeights] = None,
) -> PredictiveOutput:
    """
    Compute the predictive distress score.

    Args:
        input: Property facts with reference date
        weights: Feature weights; validated before use (defaults when None)

    Returns:
        PredictiveOutput with features, factors and the weight snapshot

    Raises:
        ValidationError: If the weight schema is invalid
    """
    weights = validate_weights(weights or DEFAULT_WEIGHTS)
    factors: List[PredictiveFactor] = []

    def add(name: str, weight: float, raw_value: float, sub_score: float) -> None:
        factors.append(PredictiveFactor(
            name=name,
            weight=weight,
            raw_value=raw_value,
            contribution=round(sub_score * weight),
        ))

    owner_age = infer_owner_age(input)
    age_sub = min(round(age_multiplier(owner_age) * 35), 100) if owner_age is not None else 40
    add("owner_age_inference", weights.owner_age, owner_age if owner_age is not None else -1, age_sub)

    burn_rate = compute_equity_burn_rate(input)
    add("equity_burn_rate", weights.equity_burn_rate, round(burn_rate or 0, 4), equity_burn_score(burn_rate))

    absentee_days = compute_absentee_duration(input)
    add("absentee_duration", weights.absentee_duration, absentee_days or 0,
        absentee_score(input, absentee_days))

    tax_trend = compute_tax_delinquency_trend(input)
    add("tax_delinquency_trend", weights.tax_delinquency_trend, round(tax_trend or 0, 4),
        tax_trend_score(input, tax_trend))

    life_event = compute_life_event_probability(input, owner_age)
    add("life_event_probability", weights.life_event_probability, round(life_event, 2),
        min(round(life_event * 200), 100))

    velocity = compute_signal_velocity(input)
    add("signal_velocity", weights.signal_velocity, round(velocity, 2), min(round(velocity * 20), 100))

    stress = compute_ownership_stress(input)
    add("ownership_stress", weights.ownership_stress, stress, stress)

    exposure = compute_market_exposure(input)
    add("market_exposure", weights.market_exposure, exposure, exposure)

    skip = compute_skip_trace(
        input.owner_name,
        input.as_of,
        ownership_years=input.ownership_years,
        owner_age_known=input.owner_age_known,
        is_absentee=input.is_absentee,
        is_corporate_owner=input.is_corporate_owner,
        is_free_clear=input.is_free_clear,
        is_vacant=input.is_vacant,
        has_phone=input.has_phone,
        has_email=input.has_email,
        active_signal_count=len(input.active_signals),
        has_probate_signal=input.has_probate_signal or any(s.type == "probate" for s in input.active_signals),
        has_inherited_signal=input.has_inherited_signal or any(s.type == "inherited" for s in input.active_signals),
        delinquent_amount=input.delinquent_amount,
    )
    add("skip_trace_intelligence", weights.skip_trace_intelligence, skip.skip_trace_score,
        skip.skip_trace_score)

    score = int(clamp(round(sum(f.contribution for f in factors)), 0, 100))

    output = PredictiveOutput(
        predictive_score=score,
        days_until_distress=estimate_days_until_distress(score, input),
        confidence=compute_confidence(input),
        label=predictive_label(score),
        model_version=PREDICTIVE_MODEL_VERSION,
        features=PredictiveFeatures(
            owner_age_inference=owner_age,
            equity_burn_rate=burn_rate,
            absentee_duration_days=absentee_days,
            tax_delinquency_trend=tax_trend,
            life_event_probability=round(life_event, 2),
            signal_velocity=round(velocity, 2),
            ownership_stress=stress,
            market_exposure=exposure,
            skip_trace_score=skip.skip_trace_score,
            heir_probability=skip.heir_probability,
            contact_probability=skip.contact_probability,
        ),
        factors=factors,
        weights=weights.model_dump(),
    )

    logger.debug(
        "predictive_scored",
        property_id=input.property_id,
        predictive_score=output.predictive_score,
        label=output.label,
    )
    return output


def build_prediction_record(property_id: int, output: PredictiveOutput) -> Dict[str, Any]:
    """Column values for a PredictionRecord row, including the weight snapshot."""
    features = output.features
    return {
        "property_id": property_id,
        "model_version": output.model_version,
        "predictive_score": output.predictive_score,
        "days_until_distress": output.days_until_distress,
        "confidence": output.confidence,
        "label": output.label,
        "owner_age_inference": features.owner_age_inference,
        "equity_burn_rate": features.equity_burn_rate,
        "absentee_duration_days": features.absentee_duration_days,
        "tax_delinquency_trend": features.tax_delinquency_trend,
        "life_event_probability": features.life_event_probability,
        "features": features.model_dump(),
        "factors": [factor.model_dump() for factor in output.factors],
        "weights": dict(output.weights),
    }
