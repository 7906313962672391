"""
Heat Score Blend

Final heat score = weighted average of the deterministic composite and the
predictive score (70/30 by default).
"""
import math

from config.settings import settings
from src.distress_leads.exceptions import ValidationError
from src.distress_leads.utils.coercion import clamp


def blend_heat_score(deterministic: float, predictive: float, deterministic_weight: float = None) -> int:
    """
    Blend deterministic and predictive scores.

    The result is rounded and then kept inside [min(d, p), max(d, p)], so
    rounding can never push it outside the two inputs.

    Args:
        deterministic: Deterministic composite (0-100)
        predictive: Predictive score (0-100)
        deterministic_weight: Weight of the deterministic score; the
            predictive score gets the remainder

    Returns:
        Blended heat score (integer, 0-100)

    Raises:
        ValidationError: If the weight is outside [0, 1]
    """
    if deterministic_weight is None:
        deterministic_weight = settings.blend_deterministic_weight
    if not 0 <= deterministic_weight <= 1:
        raise ValidationError("Blend weight must be within [0, 1]", weight=deterministic_weight)

    predictive_weight = 1 - deterministic_weight
    blended = round(deterministic * deterministic_weight + predictive * predictive_weight)

    low = max(math.ceil(min(deterministic, predictive)), 0)
    high = min(math.floor(max(deterministic, predictive)), 100)
    return int(clamp(blended, low, max(low, high)))
