"""
Scoring Input Builders

Turn stored property state (columns, owner_flags, distress events, score
history) into scorer inputs. owner_flags is the schemaless bag every source
writes into; the keys read here are the shared vocabulary:

    absentee, corporate, inherited, elderly, out_of_state, vacant,
    free_and_clear, owner_age, absentee_since, last_sale_date,
    last_sale_price, total_loan_balance, previous_equity_percent,
    equity_delta_months, delinquent_amount, previous_delinquent_amount,
    delinquent_years, tax_assessed_value, foreclosure_stage,
    default_amount, comp_ratio
"""
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from src.distress_leads.models.predictive import ActiveSignal, HistoricalScore, PredictiveInput
from src.distress_leads.models.signals import DistressSignal, OwnerFlags, ScoringInput
from src.distress_leads.utils.coercion import is_truthy, parse_date, to_int, to_number, years_between

DEFAULT_COMP_RATIO = 1.0


def event_age_days(event, as_of: date) -> int:
    """Days between the event (its event_date, else its insert time) and as_of."""
    occurred = event.event_date or parse_date(event.created_at) or as_of
    return max((as_of - occurred).days, 0)


def build_scoring_input(
    prop,
    events: Iterable,
    as_of: date,
    comp_ratio: Optional[float] = None,
    historical_conversion_rate: float = 0.0,
) -> ScoringInput:
    flags: Dict[str, Any] = prop.owner_flags or {}
    signals = [
        DistressSignal(type=e.event_type, severity=e.severity, days_since_event=event_age_days(e, as_of))
        for e in events
    ]
    owner_age = to_number(flags.get("owner_age"))
    if comp_ratio is None:
        comp_ratio = to_number(flags.get("comp_ratio")) or DEFAULT_COMP_RATIO

    return ScoringInput(
        signals=signals,
        owner_flags=OwnerFlags(
            absentee=is_truthy(flags.get("absentee")),
            corporate=is_truthy(flags.get("corporate")),
            inherited=is_truthy(flags.get("inherited")) or any(s.type == "inherited" for s in signals),
            elderly=is_truthy(flags.get("elderly")) or (owner_age is not None and owner_age >= 65),
            out_of_state=is_truthy(flags.get("out_of_state")),
        ),
        equity_percent=prop.equity_percent or 0.0,
        comp_ratio=comp_ratio,
        historical_conversion_rate=historical_conversion_rate,
    )


def build_predictive_input(
    prop,
    events: Iterable,
    scores: Iterable,
    as_of: date,
    overrides: Optional[Dict[str, Any]] = None,
) -> PredictiveInput:
    """
    Build a PredictiveInput from a property, its events and its score history.

    Args:
        prop: Property row (or any object with the same attributes)
        events: DistressEvent rows
        scores: ScoringRecord rows
        as_of: Reference date
        overrides: owner_flags-style keys that take precedence for this run
    """
    flags: Dict[str, Any] = {**(prop.owner_flags or {}), **(overrides or {})}
    events = list(events)

    last_sale_date = parse_date(flags.get("last_sale_date"))
    ownership_years = years_between(last_sale_date, as_of) if last_sale_date else None

    signals: List[ActiveSignal] = [
        ActiveSignal(type=e.event_type, severity=e.severity, days_since_event=event_age_days(e, as_of))
        for e in events
    ]
    history = [
        HistoricalScore(composite=s.composite_score, created_at=parse_date(s.created_at) or as_of)
        for s in scores
    ]

    owner_age = to_int(flags.get("owner_age"))
    return PredictiveInput(
        property_id=prop.id,
        owner_name=prop.owner_name or "Unknown",
        ownership_years=ownership_years,
        last_sale_date=last_sale_date,
        last_sale_price=to_number(flags.get("last_sale_price")),
        estimated_value=prop.estimated_value if prop.estimated_value is not None else to_number(flags.get("avm")),
        equity_percent=prop.equity_percent,
        previous_equity_percent=to_number(flags.get("previous_equity_percent")),
        equity_delta_months=to_number(flags.get("equity_delta_months")),
        total_loan_balance=to_number(flags.get("total_loan_balance")),
        is_absentee=is_truthy(flags.get("absentee")),
        absentee_since_date=parse_date(flags.get("absentee_since")),
        is_vacant=is_truthy(flags.get("vacant")) or any(s.type == "vacant" for s in signals),
        is_corporate_owner=is_truthy(flags.get("corporate")),
        is_free_clear=is_truthy(flags.get("free_and_clear")),
        owner_age_known=owner_age,
        delinquent_amount=to_number(flags.get("delinquent_amount")),
        previous_delinquent_amount=to_number(flags.get("previous_delinquent_amount")),
        delinquent_years=to_int(flags.get("delinquent_years")) or 0,
        tax_assessed_value=to_number(flags.get("tax_assessed_value")),
        active_signals=signals,
        historical_scores=history,
        foreclosure_stage=flags.get("foreclosure_stage") or None,
        default_amount=to_number(flags.get("default_amount")),
        has_phone=bool(prop.owner_phone),
        has_email=bool(prop.owner_email),
        has_probate_signal=any(s.type == "probate" for s in signals),
        has_inherited_signal=any(s.type == "inherited" for s in signals),
        as_of=as_of,
    )
