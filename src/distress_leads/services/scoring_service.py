"""
Scoring Service

On-demand predictive scoring, weight calibration and full score replay.
Scoring never changes lead status; a prediction only refreshes the priority
of an existing active lead.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.distress_leads.db.models import Property
from src.distress_leads.db.repository import (
    DistressEventRepository,
    LeadRepository,
    PredictionRecordRepository,
    PropertyRepository,
    ScoringRecordRepository,
    ScoringWeightSetRepository,
)
from src.distress_leads.exceptions import DistressLeadsError, ValidationError
from src.distress_leads.ingestion.record_pipeline import RecordPipeline
from src.distress_leads.scoring.blend import blend_heat_score
from src.distress_leads.scoring.inputs import build_predictive_input
from src.distress_leads.scoring.predictive import (
    PREDICTIVE_MODEL_VERSION,
    build_prediction_record,
    compute_predictive_score,
)
from src.distress_leads.scoring.weights import calibrate_weights
from src.distress_leads.services.audit import SCORING_CALIBRATED, SCORING_PREDICTED, SCORING_REPLAY, audit
from src.distress_leads.utils.coercion import today_utc
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

MAX_PREDICT_BATCH = 50


@dataclass
class PredictionSummary:
    property_id: int
    predictive_score: int
    days_until_distress: int
    confidence: int
    label: str
    blended_heat_score: Optional[int] = None


@dataclass
class PredictBatchResult:
    model_version: str
    predictions: List[PredictionSummary] = field(default_factory=list)
    errors: int = 0


@dataclass
class ReplayResult:
    processed: int = 0
    errors: int = 0
    error_messages: List[str] = field(default_factory=list)


class ScoringService:
    def __init__(self, pipeline: Optional[RecordPipeline] = None):
        self.pipeline = pipeline or RecordPipeline()
        self.properties = PropertyRepository()
        self.events = DistressEventRepository()
        self.scores = ScoringRecordRepository()
        self.predictions = PredictionRecordRepository()
        self.weight_sets = ScoringWeightSetRepository()
        self.leads = LeadRepository()

    def predict(self, session: Session, property_ids: Sequence[int],
                as_of: Optional[date] = None) -> PredictBatchResult:
        """
        Compute and persist predictive scores for stored properties.

        When a property already has a deterministic score, the blended heat
        score is recomputed and pushed onto its active lead.

        Raises:
            ValidationError: Empty batch or more than MAX_PREDICT_BATCH ids
        """
        if not property_ids:
            raise ValidationError("property_ids required")
        if len(property_ids) > MAX_PREDICT_BATCH:
            raise ValidationError(f"Max {MAX_PREDICT_BATCH} properties per batch", requested=len(property_ids))

        as_of = as_of or self.pipeline.as_of or today_utc()
        weights = self.pipeline.active_weights(session)
        result = PredictBatchResult(model_version=PREDICTIVE_MODEL_VERSION)

        for property_id in property_ids:
            prop = self.properties.get_by_id(session, property_id)
            if prop is None:
                logger.warning("predict_property_not_found", property_id=property_id)
                result.errors += 1
                continue

            events = self.events.list_for_property(session, prop.id)
            history = self.scores.history_for_property(session, prop.id)
            output = compute_predictive_score(build_predictive_input(prop, events, history, as_of), weights)
            self.predictions.create(session, **build_prediction_record(prop.id, output))

            summary = PredictionSummary(property_id=prop.id, **output.summary())
            latest = self.scores.latest_for_property(session, prop.id)
            if latest is not None:
                summary.blended_heat_score = blend_heat_score(latest.composite_score, output.predictive_score)
                lead = self.leads.get_active_for_property(session, prop.id)
                if lead is not None:
                    self.leads.refresh_priority(session, lead, summary.blended_heat_score)
            result.predictions.append(summary)

        audit.record(
            session,
            SCORING_PREDICTED,
            "batch",
            PREDICTIVE_MODEL_VERSION,
            details={
                "model_version": PREDICTIVE_MODEL_VERSION,
                "requested": len(property_ids),
                "scored": len(result.predictions),
                "errors": result.errors,
                "results": [
                    {"property_id": p.property_id, "score": p.predictive_score, "days": p.days_until_distress}
                    for p in result.predictions
                ],
            },
        )
        logger.info("predictions_computed", scored=len(result.predictions), errors=result.errors)
        return result

    def calibrate(self, session: Session, weights: Mapping[str, Any],
                  model_version: Optional[str] = None, actor_id: str = "system",
                  notes: Optional[str] = None):
        """
        Validate and activate a predictive weight schema.

        Raises:
            ValidationError: Negative weights, unknown names, or a sum off by
                more than 0.005
        """
        validated = calibrate_weights(weights)
        version = model_version or PREDICTIVE_MODEL_VERSION
        weight_set = self.weight_sets.activate(
            session, version, validated.model_dump(), created_by=actor_id, notes=notes
        )
        audit.record(
            session,
            SCORING_CALIBRATED,
            "scoring_model",
            version,
            details={"weight_set_id": weight_set.id, "weights": validated.model_dump()},
            actor=actor_id,
        )
        return weight_set

    def replay(self, session: Session, as_of: Optional[date] = None) -> ReplayResult:
        """
        Re-score every property from its stored events with the current
        models and weights. New scoring and prediction records are appended;
        leads are not touched.
        """
        as_of = as_of or self.pipeline.as_of or today_utc()
        result = ReplayResult()

        property_ids = list(session.scalars(select(Property.id).order_by(Property.id)))
        for property_id in property_ids:
            try:
                with session.begin_nested():
                    prop = self.properties.get_by_id(session, property_id)
                    self.pipeline.score_property(session, prop, as_of)
                result.processed += 1
            except (DistressLeadsError, SQLAlchemyError, ValueError) as e:
                logger.warning("replay_property_failed", property_id=property_id, error=str(e))
                result.errors += 1
                result.error_messages.append(f"{property_id}: {e}")

        audit.record(
            session,
            SCORING_REPLAY,
            "scoring_model",
            PREDICTIVE_MODEL_VERSION,
            details={"processed": result.processed, "errors": result.errors, "as_of": as_of.isoformat()},
        )
        logger.info("scores_replayed", processed=result.processed, errors=result.errors)
        return result
