"""
Property Editor

Manual corrections from the lead file editor. Only an allow-listed set of
columns can be changed. The identity columns (apn, county) form the golden
key that event fingerprints are built from, so they are never editable.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.distress_leads.db.models import Property
from src.distress_leads.db.repository import LeadRepository, PropertyRepository
from src.distress_leads.exceptions import NotFoundError, ValidationError
from src.distress_leads.services.audit import PROPERTY_EDITED, audit
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

EDITABLE_FIELDS = (
    "address", "city", "state", "zip", "owner_name",
    "property_type", "notes",
)

IDENTITY_FIELDS = ("apn", "county")


@dataclass
class PropertyEditResult:
    property: Property
    fields_changed: List[str]
    lead_id: Optional[int] = None


def clean_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep allow-listed keys.

    Raises:
        ValidationError: If an identity column is supplied, or nothing editable remains
    """
    identity = sorted(key for key in IDENTITY_FIELDS if fields.get(key) is not None)
    if identity:
        raise ValidationError(
            "apn and county are immutable once assigned",
            fields=identity,
        )
    values = {key: fields[key] for key in EDITABLE_FIELDS if key in fields and fields[key] is not None}
    if not values:
        raise ValidationError(
            "No editable fields supplied",
            allowed=list(EDITABLE_FIELDS),
            received=sorted(fields),
        )
    return values


class PropertyEditorService:
    def __init__(self, properties: Optional[PropertyRepository] = None,
                 leads: Optional[LeadRepository] = None):
        self.properties = properties or PropertyRepository()
        self.leads = leads or LeadRepository()

    def update_property(
        self,
        session: Session,
        property_id: int,
        fields: Dict[str, Any],
        lead_id: Optional[int] = None,
        actor_id: str = "system",
    ) -> PropertyEditResult:
        """
        Apply a manual edit.

        Args:
            session: Database session (caller commits)
            property_id: Property to edit
            fields: Requested column values; keys outside the allow-list are ignored
            lead_id: Lead whose file was edited; gets the notes and the audit entry
            actor_id: Editing user

        Returns:
            PropertyEditResult

        Raises:
            ValidationError: No editable fields, or an identity column was supplied
            NotFoundError: Unknown property or lead
        """
        values = clean_fields(fields)
        prop = self.properties.update_fields(session, property_id, values)

        changed = sorted(values)
        if lead_id is not None:
            lead = self.leads.get_by_id(session, lead_id)
            if lead is None:
                raise NotFoundError(f"Lead {lead_id} not found", lead_id=lead_id)
            if "notes" in values:
                lead.notes = values["notes"]
                lead.lock_version = lead.lock_version + 1
                session.flush()
            audit.record(
                session,
                PROPERTY_EDITED,
                "lead",
                lead_id,
                details={"property_id": property_id, "fields_changed": changed},
                actor=actor_id,
            )

        logger.info("property_edited", property_id=property_id, lead_id=lead_id, fields_changed=changed)
        return PropertyEditResult(property=prop, fields_changed=changed, lead_id=lead_id)
