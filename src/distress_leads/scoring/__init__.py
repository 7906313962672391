"""
Scoring Module

Deterministic and predictive distress scoring and the heat score blend.
"""
from src.distress_leads.scoring.blend import blend_heat_score
from src.distress_leads.scoring.deterministic import compute_score, score_label
from src.distress_leads.scoring.predictive import build_prediction_record, compute_predictive_score
from src.distress_leads.scoring.weights import DEFAULT_WEIGHTS, FeatureWeights, calibrate_weights

__all__ = [
    "blend_heat_score",
    "compute_score",
    "score_label",
    "compute_predictive_score",
    "build_prediction_record",
    "FeatureWeights",
    "DEFAULT_WEIGHTS",
    "calibrate_weights",
]
