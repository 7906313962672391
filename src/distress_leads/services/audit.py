"""
Audit Log

Every ingestion phase and lead mutation appends one entry:
{actor, action, entity_type, entity_id, details, created_at}.
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from src.distress_leads.db.repository import EventLogRepository
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"

# Action names
CRAWLER_RUN = "crawler.run"
LEAD_PROMOTED = "lead.promoted"
LEAD_REFRESHED = "lead.refreshed"
LEAD_STATUS_CHANGED = "lead.status_changed"
LEAD_ASSIGNED = "lead.assigned"
COMPLIANCE_BLOCKED = "compliance.blocked"
COMPLIANCE_ENTRY_ADDED = "compliance.entry_added"
RANGER_PUSH_RECEIVED = "ranger_push.received"
INGEST_RECEIVED = "ingest.received"
PROPERTY_EDITED = "PROPERTY_EDITED"
AGENT_PHASE = "agent.phase"
AGENT_CYCLE = "agent.cycle"
SCORING_CALIBRATED = "scoring.calibrated"
SCORING_REPLAY = "scoring.replay"
SCORING_PREDICTED = "scoring.predicted"


class AuditLogger:
    """Thin service over EventLogRepository that also mirrors entries to the structured log."""

    def __init__(self, repository: Optional[EventLogRepository] = None):
        self.repository = repository or EventLogRepository()

    def record(
        self,
        session: Session,
        action: str,
        entity_type: str,
        entity_id: Any = None,
        details: Optional[Dict[str, Any]] = None,
        actor: str = SYSTEM_ACTOR,
    ):
        """
        Append an audit entry in the caller's transaction.

        Args:
            session: Database session
            action: Action name (e.g. "lead.promoted")
            entity_type: Entity kind ("lead", "property", "agent_cycle", ...)
            entity_id: Entity identifier
            details: JSON-serializable context
            actor: User ID or "system"
        """
        entry = self.repository.append(
            session,
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
        logger.info("audit_recorded", action=action, entity_type=entity_type, entity_id=entity_id, actor=actor)
        return entry


audit = AuditLogger()
