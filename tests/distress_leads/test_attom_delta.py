"""
Tests for the ATTOM client and the daily delta ingestion.
"""
from datetime import date
from unittest.mock import MagicMock, Mock

import pytest
import requests
from sqlalchemy import func, select

from src.distress_leads.db.models import DistressEvent, Lead, Property
from src.distress_leads.exceptions import UpstreamError
from src.distress_leads.ingestion.attom_delta import (
    compute_attom_equity,
    detect_attom_signals,
    foreclosure_to_ingest,
    ingest_attom_delta,
    property_to_ingest,
)
from src.distress_leads.scrapers.attom_client import AttomClient, DailyDelta, estimate_cost, fips_to_county


def attom_property(apn="35191.0123", absentee="Y", tax=9000, assessed=200000, modified="2025-05-31"):
    return {
        "identifier": {"apn": apn, "attomId": 1001},
        "address": {"line1": "123 Main St", "locality": "Spokane", "postal1": "99201"},
        "summary": {"absenteeInd": absentee, "propType": "SFR", "yearBuilt": 1978},
        "building": {"size": {"livingSize": 1400}, "rooms": {"beds": 3, "bathsTotal": 2}},
        "assessment": {
            "owner": {"owner1": {"fullName": "Jane Doe"}, "corporateIndicator": "N"},
            "tax": {"taxAmt": tax},
            "assessed": {"assdTtlValue": assessed},
            "mortgage": {"FirstConcurrent": {"amount": 150000}, "SecondConcurrent": {"amount": 30000}},
        },
        "avm": {"amount": {"value": 300000}},
        "vintage": {"lastModified": modified},
    }


def attom_foreclosure(apn="35191.0123", fc_type="Notice of Trustee Sale", status="Auction Scheduled", doc="FC-1"):
    return {
        "identifier": {"apn": apn},
        "address": {"line1": "9 Oak Ct", "locality": "Spokane Valley", "postal1": "99216"},
        "FC": {
            "FCType": fc_type,
            "FCStatus": status,
            "FCRecDate": "2025-05-15",
            "FCDocNbr": doc,
            "borrowerNameOwner": "Sam Lender",
        },
    }


def json_response(payload, status=200):
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = ""
    response.json.return_value = payload
    return response


@pytest.fixture
def session():
    http = MagicMock()
    http.headers = {}
    return http


class TestAttomClient:

    def test_requires_api_key(self, session, monkeypatch):
        from config.settings import settings
        monkeypatch.setattr(settings, "attom_api_key", None)
        with pytest.raises(UpstreamError):
            AttomClient(session=session)

    def test_auth_header(self, session):
        AttomClient(api_key="k", session=session)
        assert session.headers["apikey"] == "k"

    def test_detail_not_found_returns_none(self, session):
        session.get.return_value = json_response({}, status=404)
        client = AttomClient(api_key="k", session=session)
        assert client.get_property_detail("123", "53063") is None

    def test_rejected_request_raises(self, session):
        session.get.return_value = json_response({}, status=500)
        client = AttomClient(api_key="k", session=session)
        with pytest.raises(UpstreamError) as exc:
            client.get_property_snapshot("53063")
        assert exc.value.status == 500

    def test_transport_failure_raises(self, session):
        session.get.side_effect = requests.ConnectionError("down")
        client = AttomClient(api_key="k", session=session)
        with pytest.raises(UpstreamError):
            client.get_foreclosures("53063")

    def test_daily_delta_pages_and_window(self, session):
        in_window = attom_property(apn="1", modified="2025-05-31")
        stale = attom_property(apn="2", modified="2025-01-01")
        last_page = attom_property(apn="3", modified="2025-06-01")

        def fake_get(url, params=None, timeout=None):
            if url.endswith("/property/snapshot"):
                return json_response({"property": [in_window, stale] if params["page"] == 1 else [last_page]})
            return json_response({"property": []})

        session.get.side_effect = fake_get
        sleep = Mock()
        client = AttomClient(api_key="k", session=session, sleep=sleep)

        delta = client.pull_daily_delta("53063", date(2025, 5, 31), date(2025, 6, 1), pagesize=2, max_pages=2)

        assert [p["identifier"]["apn"] for p in delta.properties] == ["1", "3"]
        assert delta.foreclosures == []
        assert delta.api_calls == 3
        assert delta.errors == []
        sleep.assert_called_once()

    def test_daily_delta_keeps_partial_results(self, session):
        def fake_get(url, params=None, timeout=None):
            if url.endswith("/property/snapshot"):
                return json_response({"property": [attom_property()]})
            return json_response({}, status=503)

        session.get.side_effect = fake_get
        client = AttomClient(api_key="k", session=session, sleep=Mock())

        delta = client.pull_daily_delta("53063", date(2025, 5, 31), date(2025, 6, 1), pagesize=50, max_pages=2)

        assert len(delta.properties) == 1
        assert delta.api_calls == 1
        assert len(delta.errors) == 1
        assert delta.errors[0].startswith("foreclosure page 1")

    def test_cost_and_fips_helpers(self):
        assert estimate_cost(4, cost_per_record=0.05) == 5.0
        assert fips_to_county("16055") == "Kootenai"
        assert fips_to_county("99999") == "FIPS-99999"


class TestAttomSignals:

    def test_absentee_and_tax_delinquency(self):
        signals = detect_attom_signals(attom_property())
        assert [(s.event_type, s.source) for s in signals] == [
            ("absentee", "attom_absentee"),
            ("tax_lien", "attom_tax_delinquency"),
        ]

    def test_corporate_is_separate_absentee_signal(self):
        prop = attom_property()
        prop["assessment"]["owner"]["corporateIndicator"] = "Y"
        sources = [s.source for s in detect_attom_signals(prop)]
        assert "attom_absentee" in sources
        assert "attom_corporate" in sources

    def test_foreclosure_stages(self):
        prop = attom_property(absentee="N", tax=0)
        auction = detect_attom_signals(prop, attom_foreclosure())
        notice = detect_attom_signals(prop, attom_foreclosure(status="Active"))
        other = detect_attom_signals(prop, attom_foreclosure(fc_type="Default", status="Active"))

        assert [(s.severity, s.source) for s in auction] == [(9, "attom_fc_auction")]
        assert [(s.severity, s.source) for s in notice] == [(7, "attom_fc_notice")]
        assert [(s.severity, s.source) for s in other] == [(6, "attom_fc_default")]
        assert auction[0].event_date == date(2025, 5, 15)

    def test_old_small_house_reads_vacant(self):
        prop = attom_property(absentee="N", tax=0)
        prop["summary"]["yearBuilt"] = 1950
        prop["building"]["size"]["livingSize"] = 500
        assert [s.event_type for s in detect_attom_signals(prop)] == ["vacant"]

    def test_clean_property_has_no_signals(self):
        assert detect_attom_signals(attom_property(absentee="N", tax=1000)) == []

    def test_equity(self):
        assert compute_attom_equity(attom_property()) == 40.0

        free_and_clear = attom_property()
        free_and_clear["assessment"]["mortgage"] = {}
        assert compute_attom_equity(free_and_clear) == 100.0

        underwater = attom_property()
        underwater["avm"]["amount"]["value"] = 100000
        underwater["assessment"]["mortgage"]["FirstConcurrent"]["amount"] = 200000
        assert compute_attom_equity(underwater) == -50

        no_value = attom_property(assessed=0)
        no_value["avm"] = {}
        assert compute_attom_equity(no_value) is None

    def test_property_to_ingest(self):
        record = property_to_ingest(attom_property(), attom_foreclosure(), "351910123", "Spokane", "53063")

        assert record.promotion_source == "attom"
        assert record.state == "WA"
        assert record.owner_name == "Jane Doe"
        assert record.equity_percent == 40.0
        assert record.owner_flags["attom_id"] == 1001
        assert record.owner_flags["fc_type"] == "Notice of Trustee Sale"
        assert record.owner_flags["total_loan_balance"] == 180000
        assert len(record.signals) == 3

    def test_foreclosure_to_ingest(self):
        record = foreclosure_to_ingest(attom_foreclosure(fc_type="Auction"), "99", "Kootenai", "16055")

        assert record.state == "ID"
        assert record.owner_name == "Sam Lender"
        assert record.signals[0].severity == 9
        assert record.signals[0].source == "attom_fc_FC-1"
        assert "foreclosure" in record.tags


class TestIngestAttomDelta:

    @staticmethod
    def fake_client():
        client = Mock()
        client.pull_daily_delta.return_value = DailyDelta(
            properties=[
                attom_property(apn="35191.0123"),
                attom_property(apn="35191.0456", absentee="N", tax=1000),
            ],
            foreclosures=[
                attom_foreclosure(apn="35191.0123"),
                attom_foreclosure(apn="35191.0789", doc="FC-2"),
            ],
            api_calls=3,
        )
        return client

    def test_distressed_parcels_ingested(self, test_db, pipeline):
        result = ingest_attom_delta(
            test_db, self.fake_client(), counties=["Spokane"],
            since=date(2025, 5, 31), until=date(2025, 6, 1), pipeline=pipeline,
        )
        county = result.counties[0]

        assert county.fips == "53063"
        assert county.properties_fetched == 2
        assert county.foreclosures_fetched == 2
        assert county.upserted == 2
        assert county.events_inserted == 4
        assert county.errors == []
        assert test_db.scalar(select(func.count()).select_from(Property)) == 2
        assert test_db.scalar(select(func.count()).select_from(DistressEvent)) == 4
        assert test_db.scalar(select(func.count()).select_from(Lead)) == county.promoted

        summary = result.to_dict()
        assert summary["api_calls"] == 3
        assert summary["upserted"] == 2

    def test_second_delta_dedupes(self, test_db, pipeline):
        client = self.fake_client()
        ingest_attom_delta(test_db, client, counties=["Spokane"], pipeline=pipeline)
        result = ingest_attom_delta(test_db, client, counties=["Spokane"], pipeline=pipeline)

        county = result.counties[0]
        assert county.events_inserted == 0
        assert county.events_deduped == 4
        assert test_db.scalar(select(func.count()).select_from(DistressEvent)) == 4

    def test_unknown_county_reported(self, test_db, pipeline):
        client = self.fake_client()
        result = ingest_attom_delta(test_db, client, counties=["Ada"], pipeline=pipeline)

        assert result.errors == ["No FIPS code for Ada"]
        client.pull_daily_delta.assert_not_called()
