"""
Record Pipeline

The ingest path shared by every source (crawlers, inbound push, webhook,
PropertyRadar, ATTOM):

    identity -> property upsert -> event insert (fingerprint dedup)
             -> deterministic + predictive score -> blend -> promotion gate

Each call processes one property inside the caller's transaction.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.distress_leads.db.models import Property
from src.distress_leads.db.repository import (
    DistressEventRepository,
    PredictionRecordRepository,
    PropertyRepository,
    ScoringRecordRepository,
    ScoringWeightSetRepository,
)
from src.distress_leads.exceptions import DistressLeadsError, PersistenceError, ValidationError
from src.distress_leads.models.predictive import PredictiveOutput
from src.distress_leads.models.signals import ScoringOutput
from src.distress_leads.pipelines.deduplication import distress_fingerprint
from src.distress_leads.scoring.blend import blend_heat_score
from src.distress_leads.scoring.deterministic import build_scoring_record, compute_score
from src.distress_leads.scoring.inputs import build_predictive_input, build_scoring_input
from src.distress_leads.scoring.predictive import build_prediction_record, compute_predictive_score
from src.distress_leads.scoring.weights import DEFAULT_WEIGHTS, FeatureWeights
from src.distress_leads.services.promotion import PromotionGate, PromotionResult
from src.distress_leads.transformers.identity import (
    is_synthetic_apn,
    normalize_apn,
    normalize_county,
    synthetic_apn,
)
from src.distress_leads.utils.coercion import clamp, today_utc
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SignalObservation:
    """One distress signal carried by an incoming record."""
    event_type: str
    severity: float = 5
    confidence: Optional[float] = None
    event_date: Optional[date] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None


@dataclass
class IngestRecord:
    """
    Source-neutral incoming record.

    Attributes:
        apn: Source APN; a synthetic one is derived from owner/county/address when missing
        fingerprint_source: Source string mixed into event fingerprints
        promotion_source: Threshold key for the promotion gate
        signals: Distress signals observed on this property
        owner_flags: Merged into Property.owner_flags
    """
    county: str
    fingerprint_source: str
    promotion_source: str
    signals: List[SignalObservation]
    apn: Optional[str] = None
    apn_style: str = "strip"
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    owner_name: Optional[str] = None
    owner_phone: Optional[str] = None
    owner_email: Optional[str] = None
    estimated_value: Optional[float] = None
    equity_percent: Optional[float] = None
    property_type: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    sqft: Optional[int] = None
    year_built: Optional[int] = None
    lot_size: Optional[float] = None
    owner_flags: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    comp_ratio: Optional[float] = None
    historical_conversion_rate: float = 0.0
    predictive_overrides: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RecordOutcome:
    property_id: int
    property_created: bool
    events_inserted: int
    events_deduped: int
    deterministic: ScoringOutput
    predictive: PredictiveOutput
    blended: int
    promotion: PromotionResult

    @property
    def event_deduped(self) -> bool:
        return self.events_inserted == 0 and self.events_deduped > 0


class RecordPipeline:
    """
    Shared ingest path.

    Args:
        promotion_gate: Gate deciding lead creation (settings thresholds by default)
        as_of: Reference date for scoring (today by default)
    """

    def __init__(self, promotion_gate: Optional[PromotionGate] = None, as_of: Optional[date] = None):
        self.promotion_gate = promotion_gate or PromotionGate()
        self.as_of = as_of
        self.properties = PropertyRepository()
        self.events = DistressEventRepository()
        self.scores = ScoringRecordRepository()
        self.predictions = PredictionRecordRepository()
        self.weight_sets = ScoringWeightSetRepository()

    def resolve_identity(self, record: IngestRecord):
        county = normalize_county(record.county)
        if record.apn and is_synthetic_apn(record.apn):
            return record.apn, county
        apn = normalize_apn(record.apn, style=record.apn_style) if record.apn else ""
        if not apn:
            if not record.owner_name:
                raise ValidationError("Record has neither APN nor owner name")
            apn = synthetic_apn(record.owner_name, county, record.address)
        return apn, county

    def active_weights(self, session: Session) -> FeatureWeights:
        weight_set = self.weight_sets.get_active(session)
        if weight_set is None:
            return DEFAULT_WEIGHTS
        return FeatureWeights(**weight_set.weights)

    def process(
        self,
        session: Session,
        record: IngestRecord,
        deterministic_override: Optional[ScoringOutput] = None,
    ) -> RecordOutcome:
        """
        Run one record through identity, dedup, scoring and promotion.

        Args:
            session: Database session (caller commits)
            record: Incoming record
            deterministic_override: Use this deterministic score instead of
                computing one (sources that deliver their own score)

        Returns:
            RecordOutcome

        Raises:
            ValidationError: If the record cannot be resolved to an identity
        """
        as_of = self.as_of or today_utc()
        apn, county = self.resolve_identity(record)

        prop, created = self.properties.upsert(
            session,
            apn,
            county,
            owner_flags=record.owner_flags,
            address=record.address,
            city=record.city,
            state=record.state,
            zip=record.zip,
            owner_name=record.owner_name,
            owner_phone=record.owner_phone,
            owner_email=record.owner_email,
            estimated_value=record.estimated_value,
            equity_percent=record.equity_percent,
            property_type=record.property_type,
            bedrooms=record.bedrooms,
            bathrooms=record.bathrooms,
            sqft=record.sqft,
            year_built=record.year_built,
            lot_size=record.lot_size,
        )

        inserted = deduped = 0
        for signal in record.signals:
            source = signal.source or record.fingerprint_source
            _, was_duplicate = self.events.insert_event(
                session,
                property_id=prop.id,
                event_type=signal.event_type,
                source=source,
                severity=clamp(signal.severity, 0, 10),
                confidence=signal.confidence,
                event_date=signal.event_date,
                fingerprint=distress_fingerprint(apn, county, signal.event_type, source),
                raw_data=signal.raw_data,
            )
            if was_duplicate:
                deduped += 1
            else:
                inserted += 1

        deterministic, predictive, blended = self.score_property(
            session,
            prop,
            as_of,
            comp_ratio=record.comp_ratio,
            historical_conversion_rate=record.historical_conversion_rate,
            predictive_overrides=record.predictive_overrides,
            deterministic_override=deterministic_override,
        )

        promotion = self.promotion_gate.evaluate(
            session,
            prop.id,
            blended,
            record.promotion_source,
            tags=record.tags,
            notes=record.notes,
        )

        logger.debug(
            "record_processed",
            property_id=prop.id,
            source=record.fingerprint_source,
            events_inserted=inserted,
            events_deduped=deduped,
            blended=blended,
            promotion=promotion.outcome,
        )
        return RecordOutcome(
            property_id=prop.id,
            property_created=created,
            events_inserted=inserted,
            events_deduped=deduped,
            deterministic=deterministic,
            predictive=predictive,
            blended=blended,
            promotion=promotion,
        )

    def process_in_savepoint(
        self,
        session: Session,
        record: IngestRecord,
        deterministic_override: Optional[ScoringOutput] = None,
    ) -> RecordOutcome:
        """
        Process one record inside a SAVEPOINT.

        Raises:
            PersistenceError: A store write failed; only this record was rolled back
        """
        try:
            with session.begin_nested():
                return self.process(session, record, deterministic_override)
        except SQLAlchemyError as e:
            raise PersistenceError(
                str(e.orig) if getattr(e, "orig", None) is not None else str(e),
                source=record.fingerprint_source,
                apn=record.apn,
            ) from e

    def try_process(
        self,
        session: Session,
        record: IngestRecord,
        deterministic_override: Optional[ScoringOutput] = None,
    ) -> Tuple[Optional[RecordOutcome], Optional[str]]:
        """
        Process one record inside a SAVEPOINT. A failure rolls back only this
        record and is returned as a message instead of raised.

        Returns:
            Tuple of (outcome or None, error message or None)
        """
        label = record.apn or record.owner_name or "unidentified"
        try:
            return self.process_in_savepoint(session, record, deterministic_override), None
        except (DistressLeadsError, ValueError) as e:
            logger.warning(
                "record_failed",
                source=record.fingerprint_source,
                record=label,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None, f"{label}: {e}"

    def score_property(
        self,
        session: Session,
        prop: Property,
        as_of: date,
        comp_ratio: Optional[float] = None,
        historical_conversion_rate: float = 0.0,
        predictive_overrides: Optional[Dict[str, Any]] = None,
        deterministic_override: Optional[ScoringOutput] = None,
    ):
        """
        Score a stored property from all of its events and append the
        scoring and prediction records.

        Returns:
            Tuple of (deterministic output, predictive output, blended score)
        """
        events = self.events.list_for_property(session, prop.id)
        history = self.scores.history_for_property(session, prop.id)

        if deterministic_override is not None:
            deterministic = deterministic_override
        else:
            deterministic = compute_score(
                build_scoring_input(prop, events, as_of, comp_ratio, historical_conversion_rate)
            )

        predictive = compute_predictive_score(
            build_predictive_input(prop, events, history, as_of, predictive_overrides),
            self.active_weights(session),
        )
        blended = blend_heat_score(deterministic.composite_score, predictive.predictive_score)

        self.scores.create(session, blended_score=blended, **build_scoring_record(prop.id, deterministic))
        self.predictions.create(session, **build_prediction_record(prop.id, predictive))
        return deterministic, predictive, blended
