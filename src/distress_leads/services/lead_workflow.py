"""
Lead Workflow

Status changes and claims on leads. Order of checks:

1. lead exists
2. transition is legal (a status never moves to itself)
3. compliance scrub (assignment or move into a contact-exposing status)
4. compare-and-set on lock_version
5. audit entry (suppressed in ghost mode, except compliance blocks)
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from src.distress_leads.db.models import Lead, Property
from src.distress_leads.db.repository import LeadRepository
from src.distress_leads.exceptions import ComplianceBlockedError, NotFoundError, ValidationError
from src.distress_leads.services.audit import (
    COMPLIANCE_BLOCKED,
    LEAD_ASSIGNED,
    LEAD_STATUS_CHANGED,
    audit,
)
from src.distress_leads.services.compliance import ComplianceService
from src.distress_leads.services.lead_status import (
    CONTACT_EXPOSING_STATUSES,
    require_status_transition,
)
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class StatusUpdateResult:
    lead_id: int
    status: str
    assigned_to: Optional[str]
    lock_version: int

    def to_dict(self) -> dict:
        return {
            "success": True,
            "lead_id": self.lead_id,
            "status": self.status,
            "assigned_to": self.assigned_to,
            "lock_version": self.lock_version,
        }


class LeadWorkflowService:
    """Guarded lead mutations."""

    def __init__(self, compliance: Optional[ComplianceService] = None,
                 repository: Optional[LeadRepository] = None):
        self.compliance = compliance or ComplianceService()
        self.repository = repository or LeadRepository()

    def update_status(
        self,
        session: Session,
        lead_id: int,
        actor_id: str,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        expected_version: Optional[int] = None,
        ghost_mode: bool = False,
    ) -> StatusUpdateResult:
        """
        Change a lead's status and/or assignment.

        Args:
            session: Database session
            lead_id: Lead to update
            actor_id: User performing the change
            status: Requested status
            assigned_to: User claiming the lead
            expected_version: lock_version the caller last read; re-read when None
            ghost_mode: Suppress activity logging (never the compliance scrub)

        Returns:
            StatusUpdateResult with the new lock_version

        Raises:
            NotFoundError: Unknown lead
            IllegalTransitionError: Transition not in the table
            ComplianceBlockedError: Owner phone is on a compliance list
            ConflictError: lock_version mismatch
        """
        if status is None and assigned_to is None:
            raise ValidationError("Nothing to update: provide status or assigned_to")

        lead: Optional[Lead] = self.repository.get_by_id(session, lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found", lead_id=lead_id)

        version = expected_version if expected_version is not None else lead.lock_version
        previous_status = lead.status

        values = {}
        new_status = None
        if status is not None:
            new_status = require_status_transition(lead.status, status)
            values["status"] = new_status.value
        if assigned_to is not None:
            values["assigned_to"] = assigned_to
        if ghost_mode:
            values["ghost_mode"] = True

        exposes_contact = assigned_to is not None or (
            new_status is not None and new_status in CONTACT_EXPOSING_STATUSES
        )
        if exposes_contact:
            self._enforce_compliance(session, lead, actor_id, ghost_mode)

        if not values:
            return StatusUpdateResult(lead.id, lead.status, lead.assigned_to, lead.lock_version)

        lead = self.repository.compare_and_set(session, lead_id, version, values)

        if not ghost_mode:
            if new_status is not None:
                audit.record(
                    session,
                    LEAD_STATUS_CHANGED,
                    "lead",
                    lead.id,
                    details={"from": previous_status, "to": lead.status, "lock_version": lead.lock_version},
                    actor=actor_id,
                )
            if assigned_to is not None:
                audit.record(
                    session,
                    LEAD_ASSIGNED,
                    "lead",
                    lead.id,
                    details={"assigned_to": assigned_to, "lock_version": lead.lock_version},
                    actor=actor_id,
                )

        logger.info(
            "lead_status_updated",
            lead_id=lead.id,
            status=lead.status,
            assigned_to=lead.assigned_to,
            lock_version=lead.lock_version,
            ghost_mode=ghost_mode,
        )
        return StatusUpdateResult(lead.id, lead.status, lead.assigned_to, lead.lock_version)

    def _enforce_compliance(self, session: Session, lead: Lead, actor_id: str, ghost_mode: bool) -> None:
        prop = session.get(Property, lead.property_id)
        phone = prop.owner_phone if prop is not None else None
        result = self.compliance.scrub(session, phone, actor_id=actor_id)
        if result.allowed:
            return

        # blocks are always logged, ghost mode included
        audit.record(
            session,
            COMPLIANCE_BLOCKED,
            "lead",
            lead.id,
            details={"reasons": result.blocked_reasons, "ghost_mode": ghost_mode},
            actor=actor_id,
        )
        raise ComplianceBlockedError(result.blocked_reasons, phone=phone)
