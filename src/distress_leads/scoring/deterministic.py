"""
Deterministic Distress Scoring

Rule-based scorer:

    motivation = Σ(weight × severity_multiplier × recency_decay × SIGNAL_SCALE)
                 + stacking_bonus + owner_factors
    deal       = equity_percent × 0.5 + comp_ratio × 30 + ai_boost
    composite  = 0.75 × motivation + 0.25 × deal

Every term is non-negative in the signal set (except the corporate owner
flag, which does not depend on signals), so adding a signal never lowers the
composite and an older event never scores above a newer one.
"""
import math
from typing import Dict, List

from src.distress_leads.models.signals import ScoreFactor, ScoringInput, ScoringOutput
from src.distress_leads.utils.coercion import clamp
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

SCORING_MODEL_VERSION = "det-v2.1"

SIGNAL_WEIGHTS: Dict[str, float] = {
    "probate": 28,
    "pre_foreclosure": 26,
    "tax_lien": 22,
    "code_violation": 14,
    "vacant": 12,
    "divorce": 20,
    "bankruptcy": 24,
    "fsbo": 16,
    "absentee": 10,
    "inherited": 25,
    "water_shutoff": 35,
}
UNKNOWN_SIGNAL_WEIGHT = 10

# (minimum severity, multiplier), highest tier first
SEVERITY_TIERS = [(9, 1.8), (6, 1.5), (3, 1.25), (0, 1.0)]

DECAY_LAMBDA = 0.015  # ~46 day half-life
MAX_RECENCY_DAYS = 365

# (distinct signal types, bonus), highest first
STACKING_THRESHOLDS = [(5, 30), (4, 22), (3, 14), (2, 6)]

OWNER_FACTORS: Dict[str, float] = {
    "absentee": 5,
    "corporate": -3,
    "inherited": 8,
    "elderly": 4,
    "out_of_state": 6,
}

SIGNAL_SCALE = 1.5
EQUITY_WEIGHT = 0.5
COMP_RATIO_WEIGHT = 30
AI_BOOST_WEIGHT = 15
MOTIVATION_WEIGHT = 0.75
DEAL_WEIGHT = 0.25

LABEL_THRESHOLDS = [(85, "fire"), (65, "hot"), (40, "warm")]


def severity_multiplier(severity: float) -> float:
    for min_severity, multiplier in SEVERITY_TIERS:
        if severity >= min_severity:
            return multiplier
    return 1.0


def recency_decay(days_since_event: float) -> float:
    """exp(-λ·d) with d clamped to [0, 365]; non-increasing in d."""
    days = clamp(days_since_event, 0, MAX_RECENCY_DAYS)
    return math.exp(-DECAY_LAMBDA * days)


def stacking_bonus(distinct_signal_types: int) -> float:
    for min_types, bonus in STACKING_THRESHOLDS:
        if distinct_signal_types >= min_types:
            return bonus
    return 0


def score_label(score: float) -> str:
    for threshold, label in LABEL_THRESHOLDS:
        if score >= threshold:
            return label
    return "cold"


def compute_score(input: ScoringInput) -> ScoringOutput:
    """
    Score a property from its active signals, owner flags and equity.

    Pure: no clock, no randomness, no I/O.

    Args:
        input: Signals, owner flags, equity and comp ratio

    Returns:
        ScoringOutput with composite, sub-scores and factor breakdown
    """
    factors: List[ScoreFactor] = []

    signal_total = 0.0
    strongest_multiplier = 1.0
    weakest_decay = 1.0
    for signal in input.signals:
        weight = SIGNAL_WEIGHTS.get(signal.type, UNKNOWN_SIGNAL_WEIGHT)
        multiplier = severity_multiplier(signal.severity)
        decay = recency_decay(signal.days_since_event)
        contribution = weight * multiplier * decay * SIGNAL_SCALE
        signal_total += contribution

        strongest_multiplier = max(strongest_multiplier, multiplier)
        weakest_decay = min(weakest_decay, decay)
        factors.append(ScoreFactor(name=signal.type, value=weight, contribution=round(contribution, 1)))

    distinct_types = len({signal.type for signal in input.signals})
    bonus = stacking_bonus(distinct_types)
    if bonus:
        factors.append(ScoreFactor(name="stacking_bonus", value=distinct_types, contribution=bonus))

    flags = input.owner_flags.model_dump()
    owner_score = sum(points for flag, points in OWNER_FACTORS.items() if flags.get(flag))
    if owner_score:
        factors.append(ScoreFactor(name="owner_factors", value=owner_score, contribution=owner_score))

    motivation = clamp(signal_total + bonus + owner_score, 0, 100)

    equity_contribution = input.equity_percent * EQUITY_WEIGHT
    comp_contribution = input.comp_ratio * COMP_RATIO_WEIGHT
    equity_score = equity_contribution + comp_contribution
    factors.append(ScoreFactor(name="equity", value=input.equity_percent,
                               contribution=round(equity_contribution, 1)))
    factors.append(ScoreFactor(name="comp_ratio", value=input.comp_ratio,
                               contribution=round(comp_contribution, 1)))

    ai_boost = round(input.historical_conversion_rate * AI_BOOST_WEIGHT)
    if ai_boost:
        factors.append(ScoreFactor(name="ai_boost", value=input.historical_conversion_rate,
                                   contribution=ai_boost))

    deal = clamp(equity_score + ai_boost, 0, 100)
    composite = int(clamp(round(MOTIVATION_WEIGHT * motivation + DEAL_WEIGHT * deal), 0, 100))

    output = ScoringOutput(
        composite_score=composite,
        motivation_score=round(motivation, 2),
        deal_score=round(deal, 2),
        severity_multiplier=strongest_multiplier,
        recency_decay=round(weakest_decay, 4),
        stacking_bonus=bonus,
        owner_factor_score=owner_score,
        equity_factor_score=round(equity_score, 1),
        ai_boost=ai_boost,
        label=score_label(composite),
        factors=factors,
        model_version=SCORING_MODEL_VERSION,
    )

    logger.debug(
        "deterministic_scored",
        composite=output.composite_score,
        motivation=output.motivation_score,
        signals=len(input.signals),
        label=output.label,
    )
    return output


def build_scoring_record(property_id: int, output: ScoringOutput) -> Dict:
    """Column values for a ScoringRecord row."""
    return {
        "property_id": property_id,
        "model_version": output.model_version,
        "composite_score": output.composite_score,
        "motivation_score": output.motivation_score,
        "deal_score": output.deal_score,
        "severity_multiplier": output.severity_multiplier,
        "recency_decay": output.recency_decay,
        "stacking_bonus": output.stacking_bonus,
        "owner_factor_score": output.owner_factor_score,
        "equity_factor_score": output.equity_factor_score,
        "ai_boost": output.ai_boost,
        "factors": [factor.model_dump() for factor in output.factors],
    }
