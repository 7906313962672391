"""
Promotion Gate

Decides whether a freshly scored property becomes a lead. A property with
an active lead (prospect, lead, negotiation) never gets a second one: the
existing lead's priority is refreshed instead.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.settings import settings
from src.distress_leads.db.models import Lead
from src.distress_leads.db.repository import LeadRepository
from src.distress_leads.pipelines.deduplication import is_duplicate_error
from src.distress_leads.services.audit import LEAD_PROMOTED, LEAD_REFRESHED, audit
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

PROMOTED = "promoted"
UPDATED = "updated"
SKIPPED = "skipped"


@dataclass
class PromotionResult:
    outcome: str
    lead: Optional[Lead] = None
    threshold: float = 0.0

    @property
    def lead_id(self) -> Optional[int]:
        return self.lead.id if self.lead is not None else None


class PromotionGate:
    """
    Per-source promotion thresholds over the blended heat score.

    Args:
        thresholds: Source -> minimum blended score (defaults from settings)
        default_threshold: Used for sources without an explicit threshold
    """

    def __init__(self, thresholds: Optional[Dict[str, float]] = None,
                 default_threshold: Optional[float] = None,
                 repository: Optional[LeadRepository] = None):
        self.thresholds = dict(settings.promotion_thresholds if thresholds is None else thresholds)
        self.default_threshold = (
            settings.default_promotion_threshold if default_threshold is None else default_threshold
        )
        self.repository = repository or LeadRepository()

    def threshold_for(self, source: str) -> float:
        return self.thresholds.get(source, self.default_threshold)

    def evaluate(
        self,
        session: Session,
        property_id: int,
        blended: int,
        source: str,
        tags: Optional[List[str]] = None,
        notes: Optional[str] = None,
    ) -> PromotionResult:
        """
        Promote, refresh or skip.

        Args:
            session: Database session
            property_id: Scored property
            blended: Blended heat score
            source: Threshold key (crawler, ranger_push, webhook, ...)
            tags: Tags merged onto the lead
            notes: Notes for a newly created lead

        Returns:
            PromotionResult with outcome promoted / updated / skipped
        """
        threshold = self.threshold_for(source)

        active = self.repository.get_active_for_property(session, property_id)
        if active is not None:
            return self._refresh(session, active, blended, source, tags, threshold)

        if blended < threshold:
            logger.debug("promotion_skipped", property_id=property_id, blended=blended, threshold=threshold)
            return PromotionResult(SKIPPED, threshold=threshold)

        try:
            with session.begin_nested():
                lead = self.repository.create_lead(
                    session, property_id, priority=blended, source=source, tags=tags, notes=notes
                )
        except IntegrityError as e:
            if not is_duplicate_error(e):
                raise
            # another writer promoted the same property first
            active = self.repository.get_active_for_property(session, property_id)
            if active is None:
                raise
            return self._refresh(session, active, blended, source, tags, threshold)

        audit.record(
            session,
            LEAD_PROMOTED,
            "lead",
            lead.id,
            details={"property_id": property_id, "priority": blended, "source": source, "threshold": threshold},
        )
        logger.info("lead_promoted", lead_id=lead.id, property_id=property_id, priority=blended, source=source)
        return PromotionResult(PROMOTED, lead=lead, threshold=threshold)

    def _refresh(self, session: Session, lead: Lead, blended: int, source: str,
                 tags: Optional[List[str]], threshold: float) -> PromotionResult:
        previous = lead.priority
        lead = self.repository.refresh_priority(session, lead, blended, tags)
        audit.record(
            session,
            LEAD_REFRESHED,
            "lead",
            lead.id,
            details={"previous_priority": previous, "priority": blended, "source": source},
        )
        return PromotionResult(UPDATED, lead=lead, threshold=threshold)
