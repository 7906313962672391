"""
ATTOM Daily Delta Ingestion

Pulls the last day's modified parcels and foreclosure filings for each
county, detects distress signals and runs every distressed parcel through
the record pipeline. Leads are only created at the ATTOM threshold (75).
"""
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.distress_leads.db.session import session_scope
from src.distress_leads.ingestion.record_pipeline import IngestRecord, RecordPipeline, SignalObservation
from src.distress_leads.scrapers.attom_client import (
    COUNTY_FIPS,
    FIPS_TO_STATE,
    AttomClient,
    estimate_cost,
)
from src.distress_leads.services.promotion import PROMOTED, UPDATED
from src.distress_leads.transformers.identity import normalize_apn, normalize_county
from src.distress_leads.utils.coercion import clamp, parse_date, to_int, to_number, today_utc
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

ATTOM_SOURCE = "attom"


@dataclass
class CountyDeltaResult:
    county: str
    fips: str
    properties_fetched: int = 0
    foreclosures_fetched: int = 0
    upserted: int = 0
    events_inserted: int = 0
    events_deduped: int = 0
    promoted: int = 0
    updated: int = 0
    api_calls: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class AttomDeltaResult:
    counties: List[CountyDeltaResult] = field(default_factory=list)

    @property
    def api_calls(self) -> int:
        return sum(c.api_calls for c in self.counties)

    @property
    def estimated_cost(self) -> float:
        return estimate_cost(self.api_calls)

    @property
    def errors(self) -> List[str]:
        return [e for c in self.counties for e in c.errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counties": [asdict(c) for c in self.counties],
            "api_calls": self.api_calls,
            "estimated_cost": self.estimated_cost,
            "promoted": sum(c.promoted for c in self.counties),
            "upserted": sum(c.upserted for c in self.counties),
        }


def _get(data: Optional[Dict[str, Any]], *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def detect_attom_signals(prop: Dict[str, Any], fc: Optional[Dict[str, Any]] = None) -> List[SignalObservation]:
    """
    Distress signals implied by an ATTOM property record and its foreclosure.

    Each signal carries its own source tag, so absentee and corporate
    absentee are fingerprinted as separate events.
    """
    signals: List[SignalObservation] = []

    if _get(prop, "summary", "absenteeInd") == "Y" or _get(prop, "assessment", "owner", "absenteeOwnerStatus") == "O":
        signals.append(SignalObservation("absentee", severity=5, confidence=0.6, source="attom_absentee"))

    if _get(prop, "assessment", "owner", "corporateIndicator") == "Y":
        signals.append(SignalObservation("absentee", severity=3, confidence=0.6, source="attom_corporate"))

    tax_amount = to_number(_get(prop, "assessment", "tax", "taxAmt")) or 0
    assessed = to_number(_get(prop, "assessment", "assessed", "assdTtlValue")) or 0
    if assessed > 0 and tax_amount > assessed * 0.03:
        signals.append(SignalObservation("tax_lien", severity=7, confidence=0.9, source="attom_tax_delinquency"))

    foreclosure = _get(fc, "FC")
    if foreclosure:
        fc_type = (foreclosure.get("FCType") or "").lower()
        fc_status = (foreclosure.get("FCStatus") or "").lower()
        rec_date = parse_date(foreclosure.get("FCRecDate"))
        if "auction" in fc_status or "auction" in fc_type:
            signals.append(SignalObservation("pre_foreclosure", 9, 0.9, rec_date, source="attom_fc_auction"))
        elif "lis pendens" in fc_type or "notice" in fc_type:
            signals.append(SignalObservation("pre_foreclosure", 7, 0.9, rec_date, source="attom_fc_notice"))
        else:
            signals.append(SignalObservation("pre_foreclosure", 6, 0.6, rec_date, source="attom_fc_default"))

    year_built = to_number(_get(prop, "summary", "yearBuilt")) or 0
    living_size = (
        to_number(_get(prop, "building", "size", "livingSize"))
        or to_number(_get(prop, "building", "size", "bldgSize"))
        or 0
    )
    if 0 < year_built < 1960 and living_size < 600:
        signals.append(SignalObservation("vacant", severity=4, confidence=0.6, source="attom_condition"))

    return signals


def estimated_value(prop: Dict[str, Any]) -> Optional[float]:
    return (
        to_number(_get(prop, "avm", "amount", "value"))
        or to_number(_get(prop, "assessment", "market", "mktTtlValue"))
        or to_number(_get(prop, "assessment", "assessed", "assdTtlValue"))
    )


def compute_attom_equity(prop: Dict[str, Any]) -> Optional[float]:
    """Equity percent from AVM (or market/assessed value) and both mortgages; -50 to 100."""
    value = estimated_value(prop)
    if not value or value <= 0:
        return None
    first = to_number(_get(prop, "assessment", "mortgage", "FirstConcurrent", "amount")) or 0
    second = to_number(_get(prop, "assessment", "mortgage", "SecondConcurrent", "amount")) or 0
    loans = first + second
    if loans <= 0:
        return 100.0
    return clamp(round((value - loans) / value * 100, 1), -50, 100)


def foreclosure_flags(fc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    foreclosure = _get(fc, "FC")
    if not foreclosure:
        return {}
    return {
        "foreclosure_stage": foreclosure.get("FCStatus") or foreclosure.get("FCType"),
        "fc_type": foreclosure.get("FCType"),
        "default_amount": foreclosure.get("defaultAmount"),
        "fc_auction_date": foreclosure.get("FCAuctionDate"),
        "fc_lender": foreclosure.get("lenderName"),
    }


def property_to_ingest(prop: Dict[str, Any], fc: Optional[Dict[str, Any]], apn: str,
                       county: str, fips: str) -> IngestRecord:
    address = _get(prop, "address") or {}
    first_loan = to_number(_get(prop, "assessment", "mortgage", "FirstConcurrent", "amount")) or 0
    second_loan = to_number(_get(prop, "assessment", "mortgage", "SecondConcurrent", "amount")) or 0
    owner_flags = {
        "absentee": _get(prop, "summary", "absenteeInd") == "Y",
        "corporate": _get(prop, "assessment", "owner", "corporateIndicator") == "Y",
        "free_and_clear": first_loan <= 0,
        "attom_id": _get(prop, "identifier", "attomId"),
        "fips": fips,
        "tax_amount": _get(prop, "assessment", "tax", "taxAmt"),
        "tax_assessed_value": _get(prop, "assessment", "assessed", "assdTtlValue"),
        "avm": _get(prop, "avm", "amount", "value"),
        "avm_high": _get(prop, "avm", "amount", "high"),
        "avm_low": _get(prop, "avm", "amount", "low"),
        "avm_score": _get(prop, "avm", "amount", "scr"),
        "first_loan_amount": first_loan or None,
        "first_loan_date": _get(prop, "assessment", "mortgage", "FirstConcurrent", "date"),
        "total_loan_balance": first_loan + second_loan,
        "last_sale_date": (
            _get(prop, "sale", "amount", "saleRecDate")
            or _get(prop, "assessment", "mortgage", "FirstConcurrent", "date")
        ),
        "last_sale_price": _get(prop, "sale", "amount", "saleAmt"),
        "mailing_address": _get(prop, "assessment", "owner", "mailingAddressOneLine"),
        "last_modified": _get(prop, "vintage", "lastModified"),
        **foreclosure_flags(fc),
    }
    return IngestRecord(
        county=county,
        apn=apn,
        fingerprint_source=ATTOM_SOURCE,
        promotion_source=ATTOM_SOURCE,
        signals=detect_attom_signals(prop, fc),
        address=address.get("line1") or address.get("oneLine") or f"APN {apn}",
        city=address.get("locality"),
        state=FIPS_TO_STATE.get(fips, "WA"),
        zip=address.get("postal1"),
        owner_name=_get(prop, "assessment", "owner", "owner1", "fullName") or "Unknown Owner",
        estimated_value=estimated_value(prop),
        equity_percent=compute_attom_equity(prop),
        property_type=_get(prop, "summary", "propType"),
        bedrooms=to_int(_get(prop, "building", "rooms", "beds")),
        bathrooms=to_number(_get(prop, "building", "rooms", "bathsTotal")),
        sqft=to_int(_get(prop, "building", "size", "livingSize") or _get(prop, "building", "size", "bldgSize")),
        year_built=to_int(_get(prop, "summary", "yearBuilt")),
        lot_size=to_number(_get(prop, "lot", "lotSize1")),
        owner_flags={k: v for k, v in owner_flags.items() if v is not None},
        tags=["attom_daily"],
        notes="ATTOM daily delta",
    )


def foreclosure_to_ingest(fc: Dict[str, Any], apn: str, county: str, fips: str) -> IngestRecord:
    """Foreclosure filing for a parcel that was not in the property snapshot."""
    address = _get(fc, "address") or {}
    foreclosure = _get(fc, "FC") or {}
    fc_type = (foreclosure.get("FCType") or "").lower()
    severity = 9 if "auction" in fc_type else 7 if "notice" in fc_type else 6
    return IngestRecord(
        county=county,
        apn=apn,
        fingerprint_source=ATTOM_SOURCE,
        promotion_source=ATTOM_SOURCE,
        signals=[
            SignalObservation(
                "pre_foreclosure",
                severity=severity,
                confidence=0.9 if severity >= 7 else 0.7,
                event_date=parse_date(foreclosure.get("FCRecDate")),
                raw_data={"doc_number": foreclosure.get("FCDocNbr"), "fc_type": foreclosure.get("FCType")},
                source=f"attom_fc_{foreclosure.get('FCDocNbr') or 'unknown'}",
            )
        ],
        address=address.get("line1") or address.get("oneLine") or f"APN {apn}",
        city=address.get("locality"),
        state=FIPS_TO_STATE.get(fips, "WA"),
        zip=address.get("postal1"),
        owner_name=foreclosure.get("borrowerNameOwner") or "Unknown Owner",
        owner_flags={"fips": fips, **{k: v for k, v in foreclosure_flags(fc).items() if v is not None}},
        tags=["attom_daily", "foreclosure"],
        notes="ATTOM foreclosure filing",
    )


def _tally(result: CountyDeltaResult, pipeline: RecordPipeline, session: Session, record: IngestRecord) -> None:
    outcome, error = pipeline.try_process(session, record)
    if outcome is None:
        result.errors.append(error)
        return
    result.upserted += 1
    result.events_inserted += outcome.events_inserted
    result.events_deduped += outcome.events_deduped
    if outcome.promotion.outcome == PROMOTED:
        result.promoted += 1
    elif outcome.promotion.outcome == UPDATED:
        result.updated += 1


def ingest_attom_delta(
    session: Session,
    client: AttomClient,
    counties: Optional[Sequence[str]] = None,
    since: Optional[date] = None,
    until: Optional[date] = None,
    pipeline: Optional[RecordPipeline] = None,
) -> AttomDeltaResult:
    """
    Ingest one daily delta per county.

    Args:
        session: Database session (caller commits)
        client: ATTOM client
        counties: County names with a known FIPS code (default settings.agent_counties)
        since: Window start (default yesterday)
        until: Window end (default today)
        pipeline: Record pipeline

    Returns:
        AttomDeltaResult with per-county counters, API calls and estimated cost
    """
    pipeline = pipeline or RecordPipeline()
    until = until or today_utc()
    since = since or until - timedelta(days=1)
    result = AttomDeltaResult()

    for county_name in counties or settings.agent_counties:
        county = normalize_county(county_name)
        fips = COUNTY_FIPS.get(county)
        if fips is None:
            logger.warning("attom_county_unsupported", county=county)
            result.counties.append(CountyDeltaResult(county, "", errors=[f"No FIPS code for {county}"]))
            continue

        county_result = CountyDeltaResult(county=county, fips=fips)
        result.counties.append(county_result)

        delta = client.pull_daily_delta(fips, since, until)
        county_result.api_calls = delta.api_calls
        county_result.properties_fetched = len(delta.properties)
        county_result.foreclosures_fetched = len(delta.foreclosures)
        county_result.errors.extend(delta.errors)

        foreclosure_by_apn = {}
        for fc in delta.foreclosures:
            apn = normalize_apn(_get(fc, "identifier", "apn"))
            if apn:
                foreclosure_by_apn[apn] = fc

        processed = set()
        for prop in delta.properties:
            apn = normalize_apn(_get(prop, "identifier", "apn"))
            if not apn:
                continue
            record = property_to_ingest(prop, foreclosure_by_apn.get(apn), apn, county, fips)
            if not record.signals:
                continue
            processed.add(apn)
            _tally(county_result, pipeline, session, record)

        for apn, fc in foreclosure_by_apn.items():
            if apn in processed:
                continue
            _tally(county_result, pipeline, session, foreclosure_to_ingest(fc, apn, county, fips))

        logger.info("attom_county_ingested", **asdict(county_result))

    return result


def run_attom_delta(
    session_factory: Optional[sessionmaker] = None,
    counties: Optional[Sequence[str]] = None,
    client: Optional[AttomClient] = None,
    pipeline: Optional[RecordPipeline] = None,
) -> AttomDeltaResult:
    """Open a session, ingest the delta and commit."""
    client = client or AttomClient()
    with session_scope(session_factory) as session:
        return ingest_attom_delta(session, client, counties=counties, pipeline=pipeline)
