"""
Tests for Repository Layer
"""
import pytest
from sqlalchemy.exc import IntegrityError

from src.distress_leads.db.models import Lead
from src.distress_leads.db.repository import (
    ComplianceRepository,
    DataIngestionRunRepository,
    DistressEventRepository,
    EventLogRepository,
    LeadRepository,
    PropertyRepository,
    ScoringWeightSetRepository,
)
from src.distress_leads.exceptions import (
    ConflictError,
    DuplicateEvent,
    IllegalTransitionError,
    NotFoundError,
    ValidationError,
)
from src.distress_leads.services.lead_status import (
    ALLOWED_TRANSITIONS,
    LeadStatus,
    is_active,
    is_terminal,
    require_status_transition,
    validate_status_transition,
)


@pytest.fixture
def prop(test_db):
    prop, _ = PropertyRepository().upsert(test_db, "35191.0123", "spokane", address="123 Main St")
    return prop


class TestPropertyRepository:
    """Tests for PropertyRepository."""

    def test_upsert_creates_then_updates(self, test_db):
        repo = PropertyRepository()

        first, created = repo.upsert(test_db, "35191.0123", "spokane", owner_name="Jane Doe")
        second, created_again = repo.upsert(test_db, "35191.0123", "spokane", address="9 Elm St", owner_name=None)

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert second.owner_name == "Jane Doe"
        assert second.address == "9 Elm St"
        assert repo.count(test_db) == 1

    def test_owner_flags_merge(self, test_db):
        repo = PropertyRepository()
        repo.upsert(test_db, "1", "kootenai", owner_flags={"absentee": True})
        prop, _ = repo.upsert(test_db, "1", "kootenai", owner_flags={"inherited": True})

        assert prop.owner_flags == {"absentee": True, "inherited": True}

    def test_unknown_fields_ignored(self, test_db):
        prop, _ = PropertyRepository().upsert(test_db, "2", "spokane", apn_hint="nope", notes="n")
        assert prop.notes == "n"

    def test_same_apn_different_county(self, test_db):
        repo = PropertyRepository()
        a, _ = repo.upsert(test_db, "100", "spokane")
        b, _ = repo.upsert(test_db, "100", "kootenai")
        assert a.id != b.id

    def test_update_fields_missing_property(self, test_db):
        with pytest.raises(NotFoundError):
            PropertyRepository().update_fields(test_db, 999, {"notes": "x"})


class TestDistressEventRepository:
    """Tests for fingerprint deduplication."""

    def test_duplicate_fingerprint_is_deduped(self, test_db, prop):
        repo = DistressEventRepository()
        values = dict(property_id=prop.id, event_type="probate", source="obituary:test",
                      severity=7, fingerprint="f" * 64)

        event, deduped = repo.insert_event(test_db, **values)
        again, deduped_again = repo.insert_event(test_db, **values)

        assert event is not None and deduped is False
        assert again is None and deduped_again is True
        assert repo.count(test_db) == 1

    def test_add_event_raises_on_collision(self, test_db, prop):
        repo = DistressEventRepository()
        values = dict(property_id=prop.id, event_type="divorce", source="court:test",
                      severity=6, fingerprint="d" * 64)
        repo.add_event(test_db, **values)

        with pytest.raises(DuplicateEvent) as exc_info:
            repo.add_event(test_db, **values)

        assert exc_info.value.fingerprint == "d" * 64
        assert exc_info.value.to_dict()["fingerprint"] == "d" * 64
        assert repo.count(test_db) == 1

    def test_dedup_keeps_outer_transaction(self, test_db, prop):
        repo = DistressEventRepository()
        repo.insert_event(test_db, property_id=prop.id, event_type="tax_lien", source="s",
                          severity=5, fingerprint="a" * 64)
        repo.insert_event(test_db, property_id=prop.id, event_type="tax_lien", source="s",
                          severity=5, fingerprint="a" * 64)
        repo.insert_event(test_db, property_id=prop.id, event_type="vacant", source="s",
                          severity=3, fingerprint="b" * 64)

        events = repo.list_for_property(test_db, prop.id)
        assert [e.event_type for e in events] == ["tax_lien", "vacant"]

    def test_severity_check_constraint(self, test_db, prop):
        with pytest.raises(IntegrityError):
            DistressEventRepository().insert_event(
                test_db, property_id=prop.id, event_type="probate", source="s",
                severity=11, fingerprint="c" * 64,
            )


class TestLeadRepository:
    """Tests for lead compare-and-set and the one-active-lead index."""

    def test_create_lead_starts_at_version_one(self, test_db, prop):
        lead = LeadRepository().create_lead(test_db, prop.id, 70, "crawler", tags=["probate"])
        assert lead.status == "prospect"
        assert lead.lock_version == 1
        assert lead.promoted_at is not None

    def test_compare_and_set_increments_version(self, test_db, prop):
        repo = LeadRepository()
        lead = repo.create_lead(test_db, prop.id, 70, "crawler")

        updated = repo.compare_and_set(test_db, lead.id, 1, {"status": "lead"})

        assert updated.status == "lead"
        assert updated.lock_version == 2

    def test_stale_version_conflicts(self, test_db, prop):
        repo = LeadRepository()
        lead = repo.create_lead(test_db, prop.id, 70, "crawler")
        repo.compare_and_set(test_db, lead.id, 1, {"priority": 75})

        with pytest.raises(ConflictError) as exc_info:
            repo.compare_and_set(test_db, lead.id, 1, {"priority": 80})

        assert exc_info.value.current_version == 2
        assert exc_info.value.status_code == 409
        assert repo.get_by_id(test_db, lead.id).priority == 75

    def test_refresh_priority_merges_tags(self, test_db, prop):
        repo = LeadRepository()
        lead = repo.create_lead(test_db, prop.id, 60, "crawler", tags=["probate"])

        refreshed = repo.refresh_priority(test_db, lead, 72, tags=["probate", "tax_lien"])

        assert refreshed.priority == 72
        assert refreshed.tags == ["probate", "tax_lien"]
        assert refreshed.lock_version == 2

    def test_second_active_lead_rejected(self, test_db, prop):
        repo = LeadRepository()
        repo.create_lead(test_db, prop.id, 70, "crawler")

        with pytest.raises(IntegrityError):
            with test_db.begin_nested():
                test_db.add(Lead(property_id=prop.id, status="lead", priority=50, tags=[], lock_version=1))

        assert repo.count_active_for_property(test_db, prop.id) == 1

    def test_closed_lead_does_not_block_new_active(self, test_db, prop):
        repo = LeadRepository()
        lead = repo.create_lead(test_db, prop.id, 70, "crawler")
        repo.compare_and_set(test_db, lead.id, 1, {"status": "dead"})

        repo.create_lead(test_db, prop.id, 65, "webhook")

        assert repo.count_active_for_property(test_db, prop.id) == 1
        assert repo.get_active_for_property(test_db, prop.id).source == "webhook"


class TestSupportingRepositories:
    """Tests for compliance, weights, audit and run repositories."""

    def test_compliance_entry_not_duplicated(self, test_db):
        repo = ComplianceRepository()
        _, created = repo.add_entry(test_db, "5095551234", "dnc")
        _, created_again = repo.add_entry(test_db, "5095551234", "dnc")
        repo.add_entry(test_db, "5095551234", "litigant")

        assert created is True
        assert created_again is False
        assert repo.list_types_for_phone(test_db, "5095551234") == ["dnc", "litigant"]

    def test_only_one_active_weight_set(self, test_db):
        repo = ScoringWeightSetRepository()
        repo.activate(test_db, "pred-v2.1", {"owner_age": 0.11})
        latest = repo.activate(test_db, "pred-v2.2", {"owner_age": 0.12})

        assert repo.get_active(test_db).id == latest.id
        assert sum(1 for ws in repo.get_all(test_db) if ws.is_active) == 1

    def test_event_log_append(self, test_db):
        repo = EventLogRepository()
        repo.append(test_db, "system", "lead.promoted", "lead", 5, {"priority": 70})

        entries = repo.list_for_entity(test_db, "lead", 5)
        assert len(entries) == 1
        assert entries[0].entity_id == "5"
        assert repo.list_by_action(test_db, "lead.promoted")[0].details == {"priority": 70}

    def test_ingestion_run_lifecycle(self, test_db):
        repo = DataIngestionRunRepository()
        run = repo.create_run(test_db, "crawlers")
        assert run.status == "running"

        done = repo.complete_run(test_db, run.id, "partial", records_processed=10, records_failed=2)

        assert done.status == "partial"
        assert done.completed_at is not None

    def test_complete_missing_run(self, test_db):
        with pytest.raises(NotFoundError):
            DataIngestionRunRepository().complete_run(test_db, 404, "success")


class TestLeadStatusTable:
    """Tests for the status transition table."""

    @pytest.mark.parametrize("current,requested", [
        ("prospect", "lead"), ("lead", "negotiation"), ("negotiation", "disposition"),
        ("disposition", "closed"), ("nurture", "lead"), ("lead", "dead"),
    ])
    def test_legal(self, current, requested):
        assert validate_status_transition(current, requested) is True
        assert require_status_transition(current, requested).value == requested

    @pytest.mark.parametrize("current", [s.value for s in LeadStatus])
    @pytest.mark.parametrize("requested", [s.value for s in LeadStatus])
    def test_every_pair_matches_table(self, current, requested):
        expected = LeadStatus(requested) in ALLOWED_TRANSITIONS[LeadStatus(current)]
        assert validate_status_transition(current, requested) is expected

    @pytest.mark.parametrize("current,requested", [
        ("prospect", "closed"), ("dead", "lead"), ("closed", "nurture"), ("lead", "prospect"),
        ("prospect", "prospect"), ("dead", "dead"),
    ])
    def test_illegal_raises_when_required(self, current, requested):
        assert validate_status_transition(current, requested) is False
        with pytest.raises(IllegalTransitionError):
            require_status_transition(current, requested)

    @pytest.mark.parametrize("current,requested", [("sold", "lead"), ("prospect", "sold"), (None, "lead")])
    def test_unknown_status_is_false(self, current, requested):
        assert validate_status_transition(current, requested) is False

    def test_unknown_status_rejected_when_required(self):
        with pytest.raises(ValidationError):
            require_status_transition("prospect", "sold")

    def test_no_self_transitions(self):
        assert all(status not in allowed for status, allowed in ALLOWED_TRANSITIONS.items())

    def test_terminal_and_active(self):
        assert is_terminal("dead") and is_terminal("closed")
        assert not is_terminal("nurture")
        assert is_active("negotiation")
        assert not is_active("disposition")
