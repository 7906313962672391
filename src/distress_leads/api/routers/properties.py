"""
Properties Router

Manual property corrections.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.distress_leads.api.dependencies import get_db
from src.distress_leads.api.schemas import PropertyUpdateRequest, PropertyUpdateResponse
from src.distress_leads.services.property_editor import PropertyEditorService

router = APIRouter(prefix="/api/v1/properties", tags=["properties"])


@router.patch("/update", response_model=PropertyUpdateResponse)
def update_property(request: PropertyUpdateRequest, db: Session = Depends(get_db)):
    """
    Apply allow-listed field edits to a property.

    Returns:
        400 when no editable field is supplied, 404 for an unknown property or lead
    """
    result = PropertyEditorService().update_property(
        db,
        request.property_id,
        request.fields,
        lead_id=request.lead_id,
        actor_id=request.actor_id,
    )
    db.commit()
    return {"success": True, "property": result.property, "fields_changed": result.fields_changed}
