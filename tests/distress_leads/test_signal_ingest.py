"""
Tests for Pushed and Webhook Signal Ingest
"""
from unittest.mock import Mock

import pytest

from src.distress_leads.db.repository import (
    DistressEventRepository,
    EventLogRepository,
    LeadRepository,
    PropertyRepository,
)
from src.distress_leads.exceptions import ValidationError
from src.distress_leads.models.ingest import RangerPushPayload, WebhookPayload, WebhookRecord
from src.distress_leads.services.audit import INGEST_RECEIVED, RANGER_PUSH_RECEIVED
from src.distress_leads.services.signal_ingest import (
    SignalIngestService,
    map_tag_to_distress_type,
    push_confidence,
    ranger_score_output,
)


@pytest.fixture
def service(pipeline):
    return SignalIngestService(pipeline=pipeline)


def _push(**overrides) -> RangerPushPayload:
    values = dict(
        external_id="R-1001",
        apn="35191.0123",
        heat_score=90,
        tags=["pre_foreclosure"],
        address="123 Main St",
        owner_name="Jane Doe",
        county="Spokane",
        pushed_at="2025-05-30T14:00:00Z",
        audit_url="https://example.test/audit/R-1001",
    )
    values.update(overrides)
    return RangerPushPayload(**values)


def _webhook_record(**overrides) -> WebhookRecord:
    values = dict(
        apn="35191.0456",
        county="Spokane County",
        address="456 Oak Ave",
        owner_name="John Roe",
        distress_type="probate",
        raw_data={
            "severity": 9,
            "owner_flags": {"inherited": True, "absentee": True, "elderly": True,
                            "out_of_state": True, "comp_ratio": 3},
        },
    )
    values.update(overrides)
    return WebhookRecord(**values)


class TestHelpers:
    """Tests for push mapping helpers."""

    @pytest.mark.parametrize("tag,expected", [
        ("pre_foreclosure", "pre_foreclosure"),
        ("Pre-Foreclosure", "pre_foreclosure"),
        ("foreclosure", "pre_foreclosure"),
        ("Tax Lien", "tax_lien"),
        ("haunted", "vacant"),
    ])
    def test_map_tag(self, tag, expected):
        assert map_tag_to_distress_type(tag) == expected

    @pytest.mark.parametrize("heat,confidence", [(95, 0.95), (80, 0.95), (60, 0.80), (59, 0.65)])
    def test_push_confidence(self, heat, confidence):
        assert push_confidence(heat) == confidence

    def test_score_output_derives_missing_breakdown(self):
        output = ranger_score_output(80, {})
        assert output.composite_score == 80
        assert output.motivation_score == 68
        assert output.deal_score == 60
        assert output.label == "hot"

    def test_score_output_uses_breakdown(self):
        output = ranger_score_output(72.4, {"motivation": "81", "deal": 40})
        assert output.composite_score == 72
        assert output.motivation_score == 81
        assert output.deal_score == 40


class TestRangerPush:
    """Tests for SignalIngestService.ranger_push."""

    def test_first_push_creates_lead(self, test_db, service):
        result = service.ranger_push(test_db, _push())

        assert result.promotion == "promoted"
        assert result.event_deduped is False
        assert result.heat_score == 90
        assert result.blended_score >= 63
        lead = LeadRepository().get_by_id(test_db, result.lead_id)
        assert lead.priority == result.blended_score
        assert lead.source == "ranger_push"
        assert lead.tags == ["pre_foreclosure"]

        events = DistressEventRepository().list_for_property(test_db, result.property_id)
        assert len(events) == 1
        assert events[0].event_type == "pre_foreclosure"
        assert events[0].severity == 9
        assert events[0].source == "ranger_push:R-1001"

    def test_repeat_push_is_deduped(self, test_db, service):
        first = service.ranger_push(test_db, _push())
        second = service.ranger_push(test_db, _push())

        assert second.event_deduped is True
        assert second.promotion == "updated"
        assert second.lead_id == first.lead_id
        assert LeadRepository().count(test_db) == 1
        assert DistressEventRepository().count(test_db) == 1

    def test_push_is_audited(self, test_db, service):
        result = service.ranger_push(test_db, _push(ghost_mode_used=True))

        entries = EventLogRepository().list_by_action(test_db, RANGER_PUSH_RECEIVED)
        assert len(entries) == 1
        assert entries[0].entity_id == str(result.lead_id)
        assert entries[0].details["ghost_mode_used"] is True
        prop = PropertyRepository().get_by_id(test_db, result.property_id)
        assert prop.owner_flags["ranger_pushed"] is True

    def test_low_heat_push_not_promoted(self, test_db, service):
        result = service.ranger_push(test_db, _push(heat_score=20, tags=["vacant"]))

        assert result.promotion == "skipped"
        assert result.lead_id is None

    def test_missing_fields(self, test_db, service):
        with pytest.raises(ValidationError) as exc_info:
            service.ranger_push(test_db, _push(apn=None, owner_name=""))

        assert exc_info.value.context["missing"] == ["apn", "owner_name"]
        assert PropertyRepository().count(test_db) == 0

    @pytest.mark.parametrize("heat", [101, -1, "90", True, None])
    def test_bad_heat_score(self, test_db, service, heat):
        with pytest.raises(ValidationError):
            service.ranger_push(test_db, _push(heat_score=heat))

    def test_default_county(self, test_db, service):
        result = service.ranger_push(test_db, _push(county=None))
        prop = PropertyRepository().get_by_id(test_db, result.property_id)
        assert prop.county == "Spokane"


class TestWebhookBatch:
    """Tests for SignalIngestService.webhook_batch."""

    def test_requires_source_and_records(self, test_db, service):
        with pytest.raises(ValidationError):
            service.webhook_batch(test_db, WebhookPayload(source="scraper", records=[]))
        with pytest.raises(ValidationError):
            service.webhook_batch(test_db, WebhookPayload(records=[_webhook_record()]))

    def test_per_record_status(self, test_db, service):
        payload = WebhookPayload(
            source="county_scraper",
            records=[
                _webhook_record(),
                _webhook_record(address=None),
                _webhook_record(),
            ],
        )

        result = service.webhook_batch(test_db, payload)

        assert [r["status"] for r in result.records] == ["ingested", "invalid", "duplicate"]
        assert result.received == 3
        assert result.upserted == 2
        assert result.deduped == 1
        assert result.promoted == 1
        assert result.errors == 1
        assert result.records[0]["lead_id"] == result.records[2]["lead_id"]

    def test_failed_record_does_not_stop_batch(self, test_db):
        outcome = Mock()
        outcome.property_id = 7
        outcome.event_deduped = False
        outcome.promotion.outcome = "skipped"
        pipeline = Mock()
        pipeline.try_process.side_effect = [(None, "35191.0456: boom"), (outcome, None)]
        service = SignalIngestService(pipeline=pipeline)

        result = service.webhook_batch(
            test_db, WebhookPayload(source="s", records=[_webhook_record(), _webhook_record(apn="2")])
        )

        assert [r["status"] for r in result.records] == ["failed", "ingested"]
        assert result.records[0]["error"] == "35191.0456: boom"
        assert result.errors == 1
        assert result.upserted == 1

    def test_batch_is_audited(self, test_db, service):
        service.webhook_batch(test_db, WebhookPayload(source="county_scraper", records=[_webhook_record()]))

        entries = EventLogRepository().list_by_action(test_db, INGEST_RECEIVED)
        assert entries[0].entity_id == "county_scraper"
        assert entries[0].details["total"] == 1
