"""
Tests for the Shared Record Pipeline
"""
from datetime import date
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from src.distress_leads.db.repository import (
    DistressEventRepository,
    LeadRepository,
    PredictionRecordRepository,
    PropertyRepository,
    ScoringRecordRepository,
    ScoringWeightSetRepository,
)
from src.distress_leads.exceptions import PersistenceError, ValidationError
from src.distress_leads.ingestion.record_pipeline import IngestRecord, RecordPipeline, SignalObservation
from src.distress_leads.models.signals import DistressSignal, ScoringInput
from src.distress_leads.scoring.deterministic import compute_score
from src.distress_leads.services.promotion import PROMOTED, SKIPPED, UPDATED
from src.distress_leads.transformers.identity import SYNTHETIC_APN_PREFIX

AS_OF = date(2025, 6, 1)


def _strong_record(**overrides) -> IngestRecord:
    values = dict(
        county="Spokane County",
        apn="35191-0123",
        fingerprint_source="court:spokane_superior",
        promotion_source="crawler",
        address="123 Main St",
        owner_name="Jane Doe",
        equity_percent=40,
        tags=["probate", "pre_foreclosure"],
        signals=[
            SignalObservation(event_type="probate", severity=9, event_date=date(2025, 5, 20)),
            SignalObservation(event_type="pre_foreclosure", severity=9, event_date=date(2025, 5, 25)),
        ],
    )
    values.update(overrides)
    return IngestRecord(**values)


def _weak_record(**overrides) -> IngestRecord:
    values = dict(
        county="Kootenai",
        apn="A-100",
        fingerprint_source="crawler:test",
        promotion_source="crawler",
        signals=[SignalObservation(event_type="code_violation", severity=1)],
    )
    values.update(overrides)
    return IngestRecord(**values)


class TestProcess:
    """Tests for RecordPipeline.process."""

    def test_new_property_scored_and_promoted(self, test_db, pipeline):
        outcome = pipeline.process(test_db, _strong_record())

        prop = PropertyRepository().get_by_id(test_db, outcome.property_id)
        assert (prop.apn, prop.county) == ("351910123", "Spokane")
        assert outcome.property_created is True
        assert outcome.events_inserted == 2
        assert outcome.deterministic.composite_score == 88
        assert outcome.promotion.outcome == PROMOTED
        assert outcome.promotion.lead.priority == outcome.blended

        record = ScoringRecordRepository().latest_for_property(test_db, prop.id)
        assert record.blended_score == outcome.blended
        assert PredictionRecordRepository().latest_for_property(test_db, prop.id) is not None

    def test_blend_stays_between_scores(self, test_db, pipeline):
        outcome = pipeline.process(test_db, _strong_record())

        low = min(outcome.deterministic.composite_score, outcome.predictive.predictive_score)
        high = max(outcome.deterministic.composite_score, outcome.predictive.predictive_score)
        assert low <= outcome.blended <= high

    def test_repeat_record_deduped(self, test_db, pipeline):
        first = pipeline.process(test_db, _strong_record())
        second = pipeline.process(test_db, _strong_record(county="SPOKANE", apn="35191.0123"))

        assert second.property_id == first.property_id
        assert second.property_created is False
        assert second.events_deduped == 2
        assert second.event_deduped is True
        assert second.promotion.outcome == UPDATED
        assert DistressEventRepository().count(test_db) == 2
        assert LeadRepository().count(test_db) == 1
        assert len(ScoringRecordRepository().history_for_property(test_db, first.property_id)) == 2

    def test_signal_source_overrides_fingerprint_source(self, test_db, pipeline):
        record = _weak_record(signals=[
            SignalObservation(event_type="tax_lien", source="attom:tax"),
            SignalObservation(event_type="tax_lien", source="attom:assessor"),
        ])

        outcome = pipeline.process(test_db, record)

        assert outcome.events_inserted == 2
        sources = sorted(e.source for e in DistressEventRepository().list_for_property(test_db, outcome.property_id))
        assert sources == ["attom:assessor", "attom:tax"]

    def test_weak_record_skipped(self, test_db, pipeline):
        outcome = pipeline.process(test_db, _weak_record())

        assert outcome.promotion.outcome == SKIPPED
        assert LeadRepository().count(test_db) == 0

    def test_synthetic_apn_from_owner(self, test_db, pipeline):
        record = _strong_record(apn=None)

        first = pipeline.process(test_db, record)
        second = pipeline.process(test_db, _strong_record(apn=None))

        prop = PropertyRepository().get_by_id(test_db, first.property_id)
        assert prop.apn.startswith(SYNTHETIC_APN_PREFIX)
        assert second.property_id == first.property_id

    def test_synthetic_apn_passed_through(self, test_db, pipeline):
        apn, county = pipeline.resolve_identity(_weak_record(apn="CRAWL-ABCDEF123456"))
        assert apn == "CRAWL-ABCDEF123456"
        assert county == "Kootenai"

    def test_compact_apn_style(self, pipeline):
        apn, _ = pipeline.resolve_identity(_weak_record(apn="35191.0123 ", apn_style="compact"))
        assert apn == "35191.0123"

    def test_unidentifiable_record(self, test_db, pipeline):
        with pytest.raises(ValidationError):
            pipeline.process(test_db, _weak_record(apn=None, owner_name=None))

    def test_deterministic_override(self, test_db, pipeline):
        override = compute_score(ScoringInput(signals=[DistressSignal(type="pre_foreclosure", severity=9)]))

        outcome = pipeline.process(test_db, _strong_record(), deterministic_override=override)

        assert outcome.deterministic.composite_score == 60
        record = ScoringRecordRepository().latest_for_property(test_db, outcome.property_id)
        assert record.composite_score == 60

    def test_active_weight_set_used(self, test_db, pipeline):
        weights = {
            "owner_age": 0.21, "equity_burn_rate": 0.06, "absentee_duration": 0.09,
            "tax_delinquency_trend": 0.15, "life_event_probability": 0.18, "signal_velocity": 0.10,
            "ownership_stress": 0.08, "market_exposure": 0.06, "skip_trace_intelligence": 0.07,
        }
        ScoringWeightSetRepository().activate(test_db, "pred-v2.1", weights)

        outcome = pipeline.process(test_db, _strong_record())

        assert outcome.predictive.weights["owner_age"] == 0.21

    def test_owner_flags_feed_scoring(self, test_db):
        pipeline = RecordPipeline(as_of=AS_OF)
        plain = pipeline.process(test_db, _weak_record(apn="B-1"))
        flagged = pipeline.process(test_db, _weak_record(apn="B-2", owner_flags={"absentee": True, "inherited": True}))

        assert flagged.deterministic.composite_score > plain.deterministic.composite_score


class TestTryProcess:
    """Tests for per-record isolation."""

    def test_failure_isolated(self, test_db, pipeline):
        good, error = pipeline.try_process(test_db, _weak_record(apn="G-1"))
        bad, bad_error = pipeline.try_process(test_db, _weak_record(apn=None, owner_name=None))
        also_good, _ = pipeline.try_process(test_db, _weak_record(apn="G-2"))

        assert good is not None and error is None
        assert bad is None
        assert bad_error.startswith("unidentified:")
        assert also_good is not None
        assert PropertyRepository().count(test_db) == 2

    def test_failure_after_writes_rolled_back(self, test_db):
        gate = Mock()
        gate.evaluate.side_effect = PersistenceError("lead insert failed")
        pipeline = RecordPipeline(promotion_gate=gate, as_of=AS_OF)

        outcome, error = pipeline.try_process(test_db, _strong_record())

        assert outcome is None
        assert "lead insert failed" in error
        assert PropertyRepository().count(test_db) == 0
        assert DistressEventRepository().count(test_db) == 0
        assert ScoringRecordRepository().count(test_db) == 0

    def test_store_failure_becomes_persistence_error(self, test_db, pipeline):
        pipeline.properties = Mock()
        pipeline.properties.upsert.side_effect = OperationalError("INSERT", {}, Exception("disk I/O error"))

        with pytest.raises(PersistenceError) as exc_info:
            pipeline.process_in_savepoint(test_db, _weak_record(apn="P-1"))
        assert exc_info.value.context["apn"] == "P-1"
        assert "disk I/O error" in exc_info.value.message

        outcome, error = pipeline.try_process(test_db, _weak_record(apn="P-2"))
        assert outcome is None
        assert error == "P-2: disk I/O error"
