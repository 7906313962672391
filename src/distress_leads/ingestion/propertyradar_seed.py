"""
PropertyRadar Elite Seed

One targeted pull of absentee, high-equity properties. Every result is
pre-scored with the deterministic scorer; only the top few at or above the
elite cutoff are stored and pushed through the record pipeline.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.distress_leads.db.session import session_scope
from src.distress_leads.ingestion.record_pipeline import IngestRecord, RecordPipeline, SignalObservation
from src.distress_leads.models.signals import DistressSignal, OwnerFlags, ScoringInput, ScoringOutput
from src.distress_leads.scoring.deterministic import compute_score
from src.distress_leads.scrapers.propertyradar_client import PropertyRadarClient
from src.distress_leads.services.promotion import PROMOTED, UPDATED
from src.distress_leads.transformers.identity import normalize_county
from src.distress_leads.utils.coercion import days_since, is_truthy, to_int, to_number, today_utc
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

PROPERTYRADAR_SOURCE = "propertyradar"
ELITE_CUTOFF = 75
SEED_CONVERSION_RATE = 0.5
DEFAULT_COMP_RATIO = 1.1
MAX_COMP_RATIO = 3.0


@dataclass
class Candidate:
    record: Dict[str, Any]
    signals: List[SignalObservation]
    score: ScoringOutput
    comp_ratio: float


@dataclass
class SeedResult:
    fetched: int = 0
    scored: int = 0
    elite: int = 0
    promoted: int = 0
    updated: int = 0
    events_inserted: int = 0
    events_deduped: int = 0
    total_cost: Optional[float] = None
    top_scores: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fetched": self.fetched,
            "scored": self.scored,
            "elite": self.elite,
            "promoted": self.promoted,
            "updated": self.updated,
            "events_inserted": self.events_inserted,
            "events_deduped": self.events_deduped,
            "total_cost": self.total_cost,
            "top_scores": self.top_scores,
            "errors": self.errors,
        }


def _signal(event_type: str, severity: int, days: int, as_of: date, detected_from: str) -> SignalObservation:
    return SignalObservation(
        event_type=event_type,
        severity=severity,
        confidence=0.9 if severity >= 7 else 0.6,
        event_date=as_of - timedelta(days=days),
        raw_data={"detected_from": detected_from},
    )


def detect_distress_signals(pr: Dict[str, Any], as_of: date) -> List[SignalObservation]:
    """
    Distress signals implied by PropertyRadar flags.

    A record with no flagged distress still gets a weak absentee signal,
    since the search criteria only return absentee owners.
    """
    signals: List[SignalObservation] = []

    if is_truthy(pr.get("isDeceasedProperty")):
        signals.append(_signal("probate", 9, 30, as_of, "isDeceasedProperty"))

    if is_truthy(pr.get("isPreforeclosure")) or is_truthy(pr.get("inForeclosure")):
        amount = to_number(pr.get("DefaultAmount")) or 0
        days = days_since(pr.get("ForeclosureRecDate"), fallback=30, as_of=as_of)
        detected = "isPreforeclosure" if is_truthy(pr.get("isPreforeclosure")) else "inForeclosure"
        signals.append(_signal("pre_foreclosure", 9 if amount > 50000 else 7, days, as_of, detected))

    if is_truthy(pr.get("inTaxDelinquency")):
        amount = to_number(pr.get("DelinquentAmount")) or 0
        year = to_int(pr.get("DelinquentYear"))
        days = max(365 * (as_of.year - year), 30) if year else 90
        signals.append(_signal("tax_lien", 8 if amount > 10000 else 6, days, as_of, "inTaxDelinquency"))

    if is_truthy(pr.get("inBankruptcyProperty")):
        signals.append(_signal("bankruptcy", 8, 60, as_of, "inBankruptcyProperty"))
    if is_truthy(pr.get("inDivorce")):
        signals.append(_signal("divorce", 7, 60, as_of, "inDivorce"))

    if is_truthy(pr.get("isSiteVacant")) or is_truthy(pr.get("isMailVacant")):
        detected = "isSiteVacant" if is_truthy(pr.get("isSiteVacant")) else "isMailVacant"
        signals.append(_signal("vacant", 5, 60, as_of, detected))
    if is_truthy(pr.get("isNotSameMailingOrExempt")):
        signals.append(_signal("absentee", 4, 90, as_of, "isNotSameMailingOrExempt"))

    has_liens = is_truthy(pr.get("PropertyHasOpenLiens")) or is_truthy(pr.get("PropertyHasOpenPersonLiens"))
    if has_liens and not any(s.event_type == "tax_lien" for s in signals):
        signals.append(_signal("tax_lien", 5, 90, as_of, "PropertyHasOpenLiens"))

    if not signals:
        signals.append(_signal("absentee", 3, 180, as_of, "default_absentee"))
    return signals


def comp_ratio_for(pr: Dict[str, Any]) -> float:
    avm = to_number(pr.get("AVM")) or 0
    loan_balance = to_number(pr.get("TotalLoanBalance")) or 0
    ratio = avm / loan_balance if avm > 0 and loan_balance > 0 else DEFAULT_COMP_RATIO
    return min(ratio, MAX_COMP_RATIO)


def score_candidate(pr: Dict[str, Any], as_of: date) -> Candidate:
    signals = detect_distress_signals(pr, as_of)
    comp_ratio = comp_ratio_for(pr)
    absentee = is_truthy(pr.get("isNotSameMailingOrExempt"))
    equity = to_number(pr.get("EquityPercent"))
    score = compute_score(
        ScoringInput(
            signals=[
                DistressSignal(
                    type=s.event_type,
                    severity=s.severity,
                    days_since_event=(as_of - s.event_date).days,
                )
                for s in signals
            ],
            owner_flags=OwnerFlags(
                absentee=absentee,
                inherited=is_truthy(pr.get("isDeceasedProperty")),
                out_of_state=absentee,
            ),
            equity_percent=50 if equity is None else equity,
            comp_ratio=comp_ratio,
            historical_conversion_rate=SEED_CONVERSION_RATE,
        )
    )
    return Candidate(record=pr, signals=signals, score=score, comp_ratio=comp_ratio)


def select_elite(candidates: List[Candidate], count: int, cutoff: float = ELITE_CUTOFF) -> List[Candidate]:
    """Highest composite first; at most ``count`` at or above ``cutoff``."""
    ranked = sorted(candidates, key=lambda c: c.score.composite_score, reverse=True)
    return [c for c in ranked if c.score.composite_score >= cutoff][:count]


def candidate_to_ingest(candidate: Candidate, default_county: str, as_of: date) -> IngestRecord:
    pr = candidate.record
    absentee = is_truthy(pr.get("isNotSameMailingOrExempt"))
    owner_flags = {
        "radar_id": pr.get("RadarID"),
        "elite_seed": True,
        "last_enriched": as_of.isoformat(),
        "absentee": absentee,
        "out_of_state": absentee,
        "inherited": is_truthy(pr.get("isDeceasedProperty")),
        "vacant": is_truthy(pr.get("isSiteVacant")),
        "high_equity": is_truthy(pr.get("isHighEquity")),
        "free_and_clear": is_truthy(pr.get("isFreeAndClear")),
        "cash_buyer": is_truthy(pr.get("isCashBuyer")),
        "total_loan_balance": to_number(pr.get("TotalLoanBalance")),
        "last_sale_date": pr.get("LastTransferRecDate"),
        "last_sale_price": to_number(pr.get("LastTransferValue")),
        "foreclosure_stage": pr.get("ForeclosureStage"),
        "default_amount": to_number(pr.get("DefaultAmount")),
        "delinquent_amount": to_number(pr.get("DelinquentAmount")),
        "comp_ratio": candidate.comp_ratio,
    }
    for signal in candidate.signals:
        signal.raw_data = {**signal.raw_data, "radar_id": pr.get("RadarID"), "elite_seed": True}

    return IngestRecord(
        county=normalize_county(pr.get("County") or default_county, fallback=default_county),
        apn=pr.get("APN"),
        fingerprint_source=PROPERTYRADAR_SOURCE,
        promotion_source=PROPERTYRADAR_SOURCE,
        signals=candidate.signals,
        address=pr.get("Address") or pr.get("FullAddress"),
        city=pr.get("City"),
        state=pr.get("State") or "WA",
        zip=pr.get("ZipFive"),
        owner_name=pr.get("Owner") or pr.get("Taxpayer") or "Unknown Owner",
        estimated_value=to_number(pr.get("AVM")),
        equity_percent=to_number(pr.get("EquityPercent")),
        property_type=pr.get("PType"),
        bedrooms=to_int(pr.get("Beds")),
        bathrooms=to_number(pr.get("Baths")),
        sqft=to_int(pr.get("SqFt")),
        year_built=to_int(pr.get("YearBuilt")),
        lot_size=to_number(pr.get("LotSize")),
        owner_flags={k: v for k, v in owner_flags.items() if v is not None},
        tags=["propertyradar", "elite_seed"],
        notes=f"Elite seed, pre-score {candidate.score.composite_score} ({candidate.score.label})",
        comp_ratio=candidate.comp_ratio,
        historical_conversion_rate=SEED_CONVERSION_RATE,
    )


def seed_elite_properties(
    session: Session,
    client: PropertyRadarClient,
    counties: Optional[Sequence[str]] = None,
    pipeline: Optional[RecordPipeline] = None,
    limit: Optional[int] = None,
    elite_count: Optional[int] = None,
) -> SeedResult:
    """
    Pull, pre-score and ingest the elite PropertyRadar candidates.

    Args:
        session: Database session (caller commits)
        client: PropertyRadar client
        counties: Counties to search (default settings.agent_counties)
        pipeline: Record pipeline
        limit: Records to purchase (default settings.propertyradar_max_pull)
        elite_count: Candidates kept (default settings.propertyradar_elite_count)

    Returns:
        SeedResult

    Raises:
        UpstreamError: When the search itself fails
    """
    pipeline = pipeline or RecordPipeline()
    counties = list(counties or settings.agent_counties)
    elite_count = elite_count or settings.propertyradar_elite_count
    as_of = pipeline.as_of or today_utc()
    result = SeedResult()

    response = client.search(counties, limit=limit)
    records = response["results"]
    result.fetched = len(records)
    result.total_cost = response.get("total_cost")

    candidates = [score_candidate(pr, as_of) for pr in records if pr.get("APN")]
    result.scored = len(candidates)
    elite = select_elite(candidates, elite_count)
    result.elite = len(elite)
    result.top_scores = [
        {"apn": c.record.get("APN"), "composite": c.score.composite_score, "label": c.score.label}
        for c in sorted(candidates, key=lambda c: c.score.composite_score, reverse=True)[:5]
    ]
    logger.info("propertyradar_candidates_scored", scored=result.scored, elite=result.elite, cutoff=ELITE_CUTOFF)

    for candidate in elite:
        outcome, error = pipeline.try_process(session, candidate_to_ingest(candidate, counties[0], as_of))
        if outcome is None:
            result.errors.append(error)
            continue
        result.events_inserted += outcome.events_inserted
        result.events_deduped += outcome.events_deduped
        if outcome.promotion.outcome == PROMOTED:
            result.promoted += 1
        elif outcome.promotion.outcome == UPDATED:
            result.updated += 1

    logger.info("propertyradar_seed_complete", **result.to_dict())
    return result


def run_propertyradar_seed(
    session_factory: Optional[sessionmaker] = None,
    counties: Optional[Sequence[str]] = None,
    client: Optional[PropertyRadarClient] = None,
    pipeline: Optional[RecordPipeline] = None,
) -> SeedResult:
    """Open a session, run the seed and commit."""
    client = client or PropertyRadarClient()
    with session_scope(session_factory) as session:
        return seed_elite_properties(session, client, counties=counties, pipeline=pipeline)
