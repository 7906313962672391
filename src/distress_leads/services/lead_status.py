"""
Lead Status Transitions

The transition table is the single source of truth for which status
changes are legal. dead and closed are terminal.
"""
from enum import Enum
from typing import Dict, FrozenSet

from src.distress_leads.exceptions import IllegalTransitionError, ValidationError


class LeadStatus(str, Enum):
    PROSPECT = "prospect"
    LEAD = "lead"
    NEGOTIATION = "negotiation"
    DISPOSITION = "disposition"
    NURTURE = "nurture"
    DEAD = "dead"
    CLOSED = "closed"


ALLOWED_TRANSITIONS: Dict[LeadStatus, FrozenSet[LeadStatus]] = {
    LeadStatus.PROSPECT: frozenset({LeadStatus.LEAD, LeadStatus.DEAD}),
    LeadStatus.LEAD: frozenset({LeadStatus.NEGOTIATION, LeadStatus.NURTURE, LeadStatus.DEAD}),
    LeadStatus.NEGOTIATION: frozenset({LeadStatus.DISPOSITION, LeadStatus.NURTURE, LeadStatus.DEAD}),
    LeadStatus.DISPOSITION: frozenset({LeadStatus.CLOSED, LeadStatus.NURTURE, LeadStatus.DEAD}),
    LeadStatus.NURTURE: frozenset({LeadStatus.LEAD, LeadStatus.DEAD}),
    LeadStatus.DEAD: frozenset(),
    LeadStatus.CLOSED: frozenset(),
}

ACTIVE_STATUSES = frozenset({LeadStatus.PROSPECT, LeadStatus.LEAD, LeadStatus.NEGOTIATION})

# Statuses in which an agent works the owner directly
CONTACT_EXPOSING_STATUSES = frozenset({LeadStatus.LEAD, LeadStatus.NEGOTIATION})


def parse_status(value) -> LeadStatus:
    try:
        return LeadStatus(value)
    except ValueError as e:
        raise ValidationError(f"Unknown lead status: {value}", status=value) from e


def is_terminal(status) -> bool:
    return not ALLOWED_TRANSITIONS[parse_status(status)]


def is_active(status) -> bool:
    return parse_status(status) in ACTIVE_STATUSES


def validate_status_transition(current, requested) -> bool:
    """
    True when the table allows moving from ``current`` to ``requested``.

    Any other pair is False, including a status moving to itself and values
    that are not known statuses.
    """
    try:
        current_status, requested_status = LeadStatus(current), LeadStatus(requested)
    except ValueError:
        return False
    return requested_status in ALLOWED_TRANSITIONS[current_status]


def require_status_transition(current, requested) -> LeadStatus:
    """
    Check a status change against the transition table.

    Args:
        current: Current status
        requested: Requested status

    Returns:
        The requested status as a LeadStatus

    Raises:
        IllegalTransitionError: If the pair is not in the table
        ValidationError: If either value is not a known status
    """
    current_status = parse_status(current)
    requested_status = parse_status(requested)
    if not validate_status_transition(current_status, requested_status):
        raise IllegalTransitionError(
            current_status.value,
            requested_status.value,
            sorted(status.value for status in ALLOWED_TRANSITIONS[current_status]),
        )
    return requested_status
