"""
Signal Ingest Service

Inbound pushes (one pre-scored lead from the field scouting tool) and
webhook batches (many records from external scrapers). Both go through the
shared record pipeline; they differ in failure semantics:

- a push fails fast and the whole request rolls back
- a batch isolates every record in a savepoint and reports per-record status
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from src.distress_leads.exceptions import ValidationError
from src.distress_leads.ingestion.record_pipeline import IngestRecord, RecordPipeline, SignalObservation
from src.distress_leads.models.ingest import RangerPushPayload, WebhookPayload, WebhookRecord
from src.distress_leads.models.signals import ScoringOutput
from src.distress_leads.scoring.deterministic import score_label
from src.distress_leads.services.audit import INGEST_RECEIVED, RANGER_PUSH_RECEIVED, audit
from src.distress_leads.services.promotion import PROMOTED, UPDATED
from src.distress_leads.utils.coercion import parse_date, to_number
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

RANGER_PUSH_SOURCE = "ranger_push"
RANGER_MODEL_VERSION = "ranger-v1"
WEBHOOK_SOURCE = "webhook"
DEFAULT_WEBHOOK_SEVERITY = 5

TAG_TO_DISTRESS_TYPE = {
    "probate": "probate",
    "pre_foreclosure": "pre_foreclosure",
    "foreclosure": "pre_foreclosure",
    "tax_lien": "tax_lien",
    "code_violation": "code_violation",
    "vacant": "vacant",
    "divorce": "divorce",
    "bankruptcy": "bankruptcy",
    "fsbo": "fsbo",
    "absentee": "absentee",
    "inherited": "inherited",
    "water_shutoff": "water_shutoff",
}
FALLBACK_DISTRESS_TYPE = "vacant"


def map_tag_to_distress_type(tag: str) -> str:
    """'Pre-Foreclosure' -> 'pre_foreclosure'; unknown tags map to vacant."""
    normalized = "_".join(tag.lower().replace("-", " ").split())
    return TAG_TO_DISTRESS_TYPE.get(normalized, FALLBACK_DISTRESS_TYPE)


def push_confidence(heat_score: float) -> float:
    if heat_score >= 80:
        return 0.95
    if heat_score >= 60:
        return 0.80
    return 0.65


def _breakdown_number(breakdown: Dict[str, Any], key: str, default: float) -> float:
    value = to_number(breakdown.get(key))
    return default if value is None else value


def ranger_score_output(heat_score: float, breakdown: Dict[str, Any]) -> ScoringOutput:
    """
    Deterministic score taken from the push instead of computed locally.

    Missing sub-scores are derived from the composite (motivation 85%,
    deal 75%).
    """
    composite = int(round(heat_score))
    return ScoringOutput(
        composite_score=composite,
        motivation_score=_breakdown_number(breakdown, "motivation", round(composite * 0.85)),
        deal_score=_breakdown_number(breakdown, "deal", round(composite * 0.75)),
        severity_multiplier=_breakdown_number(breakdown, "severity_multiplier", 1.0),
        recency_decay=1.0,
        stacking_bonus=_breakdown_number(breakdown, "stacking_bonus", 0),
        owner_factor_score=_breakdown_number(breakdown, "owner_factor", 0),
        equity_factor_score=_breakdown_number(breakdown, "equity_factor", 0),
        ai_boost=_breakdown_number(breakdown, "ai_boost", 0),
        label=score_label(composite),
        model_version=RANGER_MODEL_VERSION,
        explanation="Score delivered with the push",
    )


@dataclass
class RangerPushResult:
    property_id: int
    lead_id: Optional[int]
    heat_score: float
    blended_score: int
    predictive_score: int
    event_deduped: bool
    promotion: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "property_id": self.property_id,
            "lead_id": self.lead_id,
            "heat_score": self.heat_score,
            "blended_score": self.blended_score,
            "predictive_score": self.predictive_score,
            "event_deduped": self.event_deduped,
            "promotion": self.promotion,
        }


@dataclass
class WebhookResult:
    source: str
    received: int = 0
    upserted: int = 0
    deduped: int = 0
    promoted: int = 0
    errors: int = 0
    records: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "source": self.source,
            "received": self.received,
            "upserted": self.upserted,
            "deduped": self.deduped,
            "promoted": self.promoted,
            "errors": self.errors,
            "records": self.records,
        }


class SignalIngestService:
    """Entry points for pushed and webhook-delivered signals."""

    def __init__(self, pipeline: Optional[RecordPipeline] = None):
        self.pipeline = pipeline or RecordPipeline()

    @staticmethod
    def validate_push(payload: RangerPushPayload) -> float:
        missing = [name for name in ("apn", "address", "owner_name") if not getattr(payload, name)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)

        heat = payload.heat_score
        if isinstance(heat, bool) or not isinstance(heat, (int, float)) or not 0 <= heat <= 100:
            raise ValidationError("heat_score must be a number between 0 and 100", heat_score=heat)
        return float(heat)

    def ranger_push(self, session: Session, payload: RangerPushPayload) -> RangerPushResult:
        """
        Ingest one pushed lead.

        The pushed heat score stands in for the deterministic score; the
        predictive score is still computed locally and blended in.

        Raises:
            ValidationError: Missing apn/address/owner_name or heat_score out of range
        """
        heat_score = self.validate_push(payload)
        primary_tag = payload.tags[0] if payload.tags else RANGER_PUSH_SOURCE
        distress_type = map_tag_to_distress_type(primary_tag)
        fingerprint_source = (
            f"{RANGER_PUSH_SOURCE}:{payload.external_id}" if payload.external_id else RANGER_PUSH_SOURCE
        )
        tags = [t.lower() for t in payload.tags]

        record = IngestRecord(
            county=payload.county or settings.default_county,
            apn=payload.apn,
            fingerprint_source=fingerprint_source,
            promotion_source=RANGER_PUSH_SOURCE,
            signals=[
                SignalObservation(
                    event_type=distress_type,
                    severity=round(heat_score / 10),
                    confidence=push_confidence(heat_score),
                    event_date=parse_date(payload.pushed_at),
                    raw_data={
                        "external_id": payload.external_id,
                        "heat_score": heat_score,
                        "tags": payload.tags,
                        "breakdown": payload.breakdown,
                        "ghost_mode_used": payload.ghost_mode_used,
                        "pushed_at": payload.pushed_at,
                        "audit_url": payload.audit_url,
                    },
                )
            ],
            address=payload.address,
            owner_name=payload.owner_name,
            owner_flags={
                "ranger_pushed": True,
                "ghost_mode": payload.ghost_mode_used,
                "absentee": "absentee" in tags,
                "vacant": "vacant" in tags,
                **{
                    key: payload.breakdown[key]
                    for key in ("foreclosure_stage", "default_amount")
                    if payload.breakdown.get(key) is not None
                },
            },
            tags=payload.tags,
            notes=f"Pushed lead {payload.external_id or ''}, heat {heat_score:g}. Audit: {payload.audit_url or 'n/a'}",
        )

        outcome = self.pipeline.process(
            session, record, deterministic_override=ranger_score_output(heat_score, payload.breakdown)
        )

        audit.record(
            session,
            RANGER_PUSH_RECEIVED,
            "lead",
            outcome.promotion.lead_id,
            details={
                "external_id": payload.external_id,
                "apn": payload.apn,
                "county": payload.county or settings.default_county,
                "heat_score": heat_score,
                "blended_score": outcome.blended,
                "tags": payload.tags,
                "ghost_mode_used": payload.ghost_mode_used,
                "audit_url": payload.audit_url,
                "event_deduped": outcome.event_deduped,
                "property_id": outcome.property_id,
                "promotion": outcome.promotion.outcome,
            },
        )
        logger.info(
            "ranger_push_ingested",
            external_id=payload.external_id,
            property_id=outcome.property_id,
            lead_id=outcome.promotion.lead_id,
            heat_score=heat_score,
            blended=outcome.blended,
            event_deduped=outcome.event_deduped,
        )
        return RangerPushResult(
            property_id=outcome.property_id,
            lead_id=outcome.promotion.lead_id,
            heat_score=heat_score,
            blended_score=outcome.blended,
            predictive_score=outcome.predictive.predictive_score,
            event_deduped=outcome.event_deduped,
            promotion=outcome.promotion.outcome,
        )

    def _webhook_record(self, source: str, record: WebhookRecord) -> IngestRecord:
        raw = record.raw_data
        return IngestRecord(
            county=record.county,
            apn=record.apn,
            fingerprint_source=source,
            promotion_source=WEBHOOK_SOURCE,
            signals=[
                SignalObservation(
                    event_type=record.distress_type,
                    severity=to_number(raw.get("severity")) or DEFAULT_WEBHOOK_SEVERITY,
                    confidence=to_number(raw.get("confidence")),
                    event_date=parse_date(raw.get("event_date")),
                    raw_data=raw,
                )
            ],
            address=record.address,
            owner_name=record.owner_name,
            owner_flags=dict(raw.get("owner_flags") or {}),
            tags=[record.distress_type],
            notes=f"Webhook {record.distress_type} signal from {source}",
        )

    def webhook_batch(self, session: Session, payload: WebhookPayload) -> WebhookResult:
        """
        Ingest a batch; one bad record never fails the others.

        Per-record status is one of ingested, duplicate, invalid or failed.

        Raises:
            ValidationError: No source or no records
        """
        if not payload.source or not payload.records:
            raise ValidationError("Invalid payload: source and records[] required")

        result = WebhookResult(source=payload.source, received=len(payload.records))
        for record in payload.records:
            entry: Dict[str, Any] = {"apn": record.apn, "county": record.county}
            if not all((record.apn, record.county, record.address, record.owner_name, record.distress_type)):
                entry["status"] = "invalid"
                result.errors += 1
                result.records.append(entry)
                continue

            outcome, error = self.pipeline.try_process(session, self._webhook_record(payload.source, record))
            if outcome is None:
                entry.update(status="failed", error=error)
                result.errors += 1
            else:
                result.upserted += 1
                entry["property_id"] = outcome.property_id
                if outcome.event_deduped:
                    result.deduped += 1
                    entry["status"] = "duplicate"
                else:
                    entry["status"] = "ingested"
                if outcome.promotion.outcome in (PROMOTED, UPDATED):
                    entry["lead_id"] = outcome.promotion.lead_id
                if outcome.promotion.outcome == PROMOTED:
                    result.promoted += 1
            result.records.append(entry)

        audit.record(
            session,
            INGEST_RECEIVED,
            "ingest_batch",
            payload.source,
            details={
                "source": payload.source,
                "total": result.received,
                "upserted": result.upserted,
                "deduped": result.deduped,
                "promoted": result.promoted,
                "errors": result.errors,
            },
        )
        logger.info(
            "webhook_batch_ingested",
            source=payload.source,
            received=result.received,
            upserted=result.upserted,
            deduped=result.deduped,
            errors=result.errors,
        )
        return result
