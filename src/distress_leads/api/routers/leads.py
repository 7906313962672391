"""
Leads Router

Lead reads and guarded status/claim updates.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from src.distress_leads.api.dependencies import get_db, get_lead_workflow
from src.distress_leads.api.schemas import LeadDetail, LeadListItem, LeadStatusRequest, LeadStatusResponse
from src.distress_leads.db.repository import LeadRepository
from src.distress_leads.exceptions import ComplianceBlockedError, NotFoundError
from src.distress_leads.services.lead_workflow import LeadWorkflowService

router = APIRouter(prefix="/api/v1/leads", tags=["leads"])


@router.get("/", response_model=List[LeadListItem])
def list_leads(
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=500, description="Number of results to return"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    db: Session = Depends(get_db),
):
    """List leads by priority, highest first."""
    return LeadRepository().list_leads(db, status=status, limit=limit, offset=offset)


@router.post("/status", response_model=LeadStatusResponse)
def update_lead_status(
    request: LeadStatusRequest,
    db: Session = Depends(get_db),
    workflow: LeadWorkflowService = Depends(get_lead_workflow),
):
    """
    Change a lead's status and/or claim it.

    Returns:
        409 on lock_version mismatch, 422 on an illegal transition,
        403 on a compliance block, 404 for an unknown lead
    """
    try:
        result = workflow.update_status(
            db,
            request.lead_id,
            actor_id=request.actor_id,
            status=request.status,
            assigned_to=request.assigned_to,
            expected_version=request.lock_version,
            ghost_mode=request.ghost_mode,
        )
    except ComplianceBlockedError:
        # keep the compliance.blocked audit entry
        db.commit()
        raise
    db.commit()
    return result.to_dict()


@router.get("/{lead_id}", response_model=LeadDetail)
def get_lead(lead_id: int, db: Session = Depends(get_db)):
    lead = LeadRepository().get_by_id(db, lead_id)
    if lead is None:
        raise NotFoundError(f"Lead {lead_id} not found", lead_id=lead_id)
    return lead
