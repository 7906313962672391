"""
Skip-Trace Intelligence

Infers owner demographics from public record facts without a paid
skip-trace provider:

- owner age (known age, first-name birth decade, or ownership duration)
- heir probability (chance the property passes to heirs)
- contact probability (chance of reaching the owner on a first attempt)

Pure: the reference date is an argument.
"""
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from src.distress_leads.utils.coercion import clamp

SKIP_TRACE_MODEL_VERSION = "skip-v1.0"
CORPORATE_SCORE = 15

CORPORATE_PATTERNS = [
    re.compile(
        r"\b(LLC|INC|CORP|LTD|LP|TRUST|ESTATE|HOLDINGS|PROPERTIES|INVESTMENTS|GROUP|"
        r"PARTNERS|ASSOCIATES|MANAGEMENT|CAPITAL|VENTURES|ENTERPRISES|REVOCABLE|"
        r"IRREVOCABLE|FAMILY|LIVING)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(BANK|MORTGAGE|NATIONAL|FEDERAL|CREDIT UNION|SAVINGS)\b", re.IGNORECASE),
]

# Peak birth decade for common first names (SSA name frequency data)
NAME_BIRTH_DECADE: Dict[str, int] = {
    "james": 1950, "john": 1945, "robert": 1945, "michael": 1960, "william": 1940,
    "david": 1955, "richard": 1950, "joseph": 1955, "thomas": 1950, "charles": 1945,
    "christopher": 1975, "daniel": 1965, "matthew": 1980, "anthony": 1970, "mark": 1960,
    "donald": 1940, "steven": 1960, "paul": 1955, "andrew": 1985, "joshua": 1985,
    "kenneth": 1950, "kevin": 1965, "brian": 1970, "george": 1940, "timothy": 1965,
    "ronald": 1950, "edward": 1940, "jason": 1975, "jeffrey": 1970, "ryan": 1985,
    "gary": 1955, "larry": 1950, "raymond": 1940, "frank": 1935, "dennis": 1950,
    "jerry": 1950, "tyler": 1995, "nathan": 1990, "brandon": 1990, "jacob": 1995,
    "mary": 1945, "patricia": 1945, "jennifer": 1970, "linda": 1950, "barbara": 1945,
    "elizabeth": 1960, "susan": 1955, "jessica": 1985, "sarah": 1985, "karen": 1960,
    "lisa": 1965, "nancy": 1950, "betty": 1935, "margaret": 1940, "sandra": 1955,
    "ashley": 1990, "dorothy": 1935, "kimberly": 1970, "emily": 1995, "donna": 1955,
    "michelle": 1970, "carol": 1950, "amanda": 1985, "melissa": 1975, "deborah": 1955,
    "shirley": 1940, "helen": 1935, "ruth": 1935, "joyce": 1945, "virginia": 1935,
    "joan": 1940, "evelyn": 1930, "judith": 1945, "martha": 1940, "gloria": 1950,
    "frances": 1935, "doris": 1930, "beverly": 1940, "alice": 1935, "jean": 1940,
}


@dataclass
class SkipTraceResult:
    """
    Skip-trace inference result.

    Attributes:
        inferred_age: Best age estimate, None when unknown
        age_method: known / name_ssa / ownership_heuristic / unknown
        heir_probability: 0-0.98
        contact_probability: 0.05-0.95
        skip_trace_score: 0-100 sub-score used by the predictive model
    """
    inferred_age: Optional[int]
    age_confidence: int
    age_method: str
    heir_probability: float
    contact_probability: float
    is_corporate_entity: bool
    skip_trace_score: int
    model_version: str = SKIP_TRACE_MODEL_VERSION
    factors: List[Dict[str, float]] = field(default_factory=list)


def detect_corporate(name: str) -> bool:
    return any(pattern.search(name or "") for pattern in CORPORATE_PATTERNS)


def extract_first_name(full_name: str) -> Optional[str]:
    cleaned = CORPORATE_PATTERNS[0].sub("", full_name or "")
    cleaned = re.sub(r"[^a-zA-Z\s'-]", "", cleaned).strip()
    parts = cleaned.split()
    if not parts:
        return None
    first = parts[0].lower()
    return first if len(first) >= 2 else None


def infer_age(owner_name: str, owner_age_known: Optional[int],
              ownership_years: Optional[float], as_of: date):
    """Returns (age, confidence, method)."""
    if owner_age_known is not None:
        return owner_age_known, 95, "known"

    first_name = extract_first_name(owner_name)
    birth_decade = NAME_BIRTH_DECADE.get(first_name) if first_name else None

    if birth_decade:
        name_age = as_of.year - birth_decade
        if ownership_years is not None and ownership_years > 0:
            blended = round(name_age * 0.6 + (33 + ownership_years) * 0.4)
            return int(clamp(blended, 22, 105)), 65, "name_ssa"
        return int(clamp(name_age, 18, 105)), 50, "name_ssa"

    if ownership_years is not None and ownership_years > 0:
        return int(clamp(round(33 + ownership_years), 25, 100)), 40, "ownership_heuristic"

    return None, 0, "unknown"


def age_score(age: int) -> int:
    if age >= 85:
        return 95
    if age >= 75:
        return 82
    if age >= 65:
        return 65
    if age >= 55:
        return 48
    if age >= 45:
        return 35
    if age >= 35:
        return 22
    return 12


def heir_probability(age: Optional[int], *, has_probate_signal: bool, has_inherited_signal: bool,
                     ownership_years: Optional[float], is_free_clear: bool, is_absentee: bool,
                     delinquent_amount: Optional[float]) -> float:
    probability = 0.05
    if has_probate_signal:
        probability += 0.45
    if has_inherited_signal:
        probability += 0.30

    if age is not None:
        if age >= 85:
            probability += 0.35
        elif age >= 75:
            probability += 0.22
        elif age >= 65:
            probability += 0.12
        elif age >= 55:
            probability += 0.05

    if ownership_years is not None and ownership_years > 25:
        probability += 0.10
    if is_free_clear:
        probability += 0.06
    if is_absentee and age is not None and age >= 70:
        probability += 0.08
    if delinquent_amount is not None and delinquent_amount > 0 and age is not None and age >= 70:
        probability += 0.10

    return clamp(probability, 0, 0.98)


def contact_probability(*, has_phone: bool, has_email: bool, is_absentee: bool, is_vacant: bool,
                        active_signal_count: int, ownership_years: Optional[float]) -> float:
    probability = 0.15
    if has_phone:
        probability += 0.35
    if has_email:
        probability += 0.15
    if not is_absentee:
        probability += 0.12
    if not is_vacant:
        probability += 0.08

    if active_signal_count >= 3:
        probability -= 0.08
    elif active_signal_count >= 2:
        probability -= 0.04

    if ownership_years is not None and ownership_years > 15:
        probability += 0.05

    return clamp(probability, 0.05, 0.95)


def compute_skip_trace(
    owner_name: str,
    as_of: date,
    *,
    ownership_years: Optional[float] = None,
    owner_age_known: Optional[int] = None,
    is_absentee: bool = False,
    is_corporate_owner: bool = False,
    is_free_clear: bool = False,
    is_vacant: bool = False,
    has_phone: bool = False,
    has_email: bool = False,
    active_signal_count: int = 0,
    has_probate_signal: bool = False,
    has_inherited_signal: bool = False,
    delinquent_amount: Optional[float] = None,
) -> SkipTraceResult:
    """
    Compute skip-trace intelligence for one owner.

    Corporate owners (flagged, or detected from the name) short-circuit to a
    fixed low score.
    """
    if is_corporate_owner or detect_corporate(owner_name):
        return SkipTraceResult(
            inferred_age=None,
            age_confidence=0,
            age_method="unknown",
            heir_probability=0.02,
            contact_probability=0.6 if has_phone else 0.25,
            is_corporate_entity=True,
            skip_trace_score=CORPORATE_SCORE,
            factors=[{"name": "corporate_entity", "value": 1, "contribution": CORPORATE_SCORE}],
        )

    age, age_confidence, age_method = infer_age(owner_name, owner_age_known, ownership_years, as_of)
    age_sub = age_score(age) if age is not None else 30

    heir = heir_probability(
        age,
        has_probate_signal=has_probate_signal,
        has_inherited_signal=has_inherited_signal,
        ownership_years=ownership_years,
        is_free_clear=is_free_clear,
        is_absentee=is_absentee,
        delinquent_amount=delinquent_amount,
    )
    heir_sub = round(heir * 100)

    contact = contact_probability(
        has_phone=has_phone,
        has_email=has_email,
        is_absentee=is_absentee,
        is_vacant=is_vacant,
        active_signal_count=active_signal_count,
        ownership_years=ownership_years,
    )
    contact_sub = round(contact * 80)

    score = int(clamp(round(age_sub * 0.40 + heir_sub * 0.35 + contact_sub * 0.25), 0, 100))

    return SkipTraceResult(
        inferred_age=age,
        age_confidence=age_confidence,
        age_method=age_method,
        heir_probability=round(heir, 3),
        contact_probability=round(contact, 3),
        is_corporate_entity=False,
        skip_trace_score=score,
        factors=[
            {"name": "age_inference", "value": age or 0, "contribution": age_sub},
            {"name": "heir_probability", "value": heir_sub, "contribution": heir_sub},
            {"name": "contact_probability", "value": round(contact * 100), "contribution": contact_sub},
        ],
    )
