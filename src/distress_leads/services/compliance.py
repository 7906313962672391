"""
Compliance Scrub

Checks an owner phone against the do-not-call, known-litigant and opt-out
lists before any contact-exposing action. The scrub fails closed: if the
lists cannot be read, the action is blocked with SCRUB_ERROR.

Ghost mode never skips the scrub.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from src.distress_leads.db.models import COMPLIANCE_LIST_TYPES
from src.distress_leads.db.repository import ComplianceRepository
from src.distress_leads.exceptions import ValidationError
from src.distress_leads.services.audit import COMPLIANCE_ENTRY_ADDED, audit
from src.distress_leads.utils.cache import cache_delete, cache_get_json, cache_set_json
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

DNC_REGISTERED = "DNC_REGISTERED"
KNOWN_LITIGANT = "KNOWN_LITIGANT"
OPT_OUT = "OPT_OUT"
SCRUB_ERROR = "SCRUB_ERROR"

REASON_BY_LIST = {
    "dnc": DNC_REGISTERED,
    "litigant": KNOWN_LITIGANT,
    "opt_out": OPT_OUT,
}

MIN_PHONE_DIGITS = 7
CACHE_PREFIX = "compliance:scrub"


def normalize_phone(phone: Optional[str]) -> str:
    """Last 10 digits of the number, "" when no digits."""
    digits = re.sub(r"\D", "", phone or "")
    return digits[-10:]


@dataclass
class ScrubResult:
    """Outcome of one compliance scrub."""
    allowed: bool
    blocked_reasons: List[str] = field(default_factory=list)
    checked_at: str = ""
    cached: bool = False


class ComplianceService:
    """
    Compliance scrub with an optional Redis result cache.

    Args:
        cache: Redis client, or None to always read the lists
        repository: Compliance list repository
        ttl_seconds: Cache lifetime for scrub results
    """

    def __init__(self, cache=None, repository: Optional[ComplianceRepository] = None,
                 ttl_seconds: Optional[int] = None):
        self.cache = cache
        self.repository = repository or ComplianceRepository()
        self.ttl_seconds = ttl_seconds or settings.compliance_cache_ttl_seconds

    def _cache_key(self, phone: str) -> str:
        return f"{CACHE_PREFIX}:{phone}"

    def scrub(self, session: Session, phone: Optional[str], actor_id: Optional[str] = None) -> ScrubResult:
        """
        Check a phone against every compliance list.

        Args:
            session: Database session
            phone: Phone number in any format
            actor_id: User requesting the scrub (for logging)

        Returns:
            ScrubResult; numbers with fewer than 7 digits are allowed
        """
        now = datetime.now(timezone.utc).isoformat()
        normalized = normalize_phone(phone)
        if len(normalized) < MIN_PHONE_DIGITS:
            return ScrubResult(allowed=True, checked_at=now)

        cached = cache_get_json(self.cache, self._cache_key(normalized))
        if cached is not None:
            return ScrubResult(
                allowed=cached["allowed"],
                blocked_reasons=list(cached["blocked_reasons"]),
                checked_at=cached["checked_at"],
                cached=True,
            )

        # a failed read must leave the caller's transaction usable for the block audit
        try:
            with session.begin_nested():
                list_types = self.repository.list_types_for_phone(session, normalized)
        except SQLAlchemyError as e:
            logger.error("compliance_scrub_failed", phone_suffix=normalized[-4:], actor_id=actor_id, error=str(e))
            return ScrubResult(allowed=False, blocked_reasons=[SCRUB_ERROR], checked_at=now)

        reasons = [REASON_BY_LIST[list_type] for list_type in list_types if list_type in REASON_BY_LIST]
        result = ScrubResult(allowed=not reasons, blocked_reasons=reasons, checked_at=now)

        cache_set_json(
            self.cache,
            self._cache_key(normalized),
            {"allowed": result.allowed, "blocked_reasons": result.blocked_reasons, "checked_at": now},
            self.ttl_seconds,
        )
        if reasons:
            logger.info("compliance_scrub_blocked", phone_suffix=normalized[-4:], reasons=reasons, actor_id=actor_id)
        return result

    def add_entry(self, session: Session, phone: str, list_type: str, source: Optional[str] = None,
                  name: Optional[str] = None, reason: Optional[str] = None, actor_id: Optional[str] = None) -> bool:
        """
        Add a phone to a compliance list and drop its cached scrub result.

        Returns:
            True if a new entry was created
        """
        if list_type not in COMPLIANCE_LIST_TYPES:
            raise ValidationError(f"Unknown compliance list: {list_type}", list_type=list_type)
        normalized = normalize_phone(phone)
        if len(normalized) < MIN_PHONE_DIGITS:
            raise ValidationError("Phone number too short", phone=phone)

        _, created = self.repository.add_entry(session, normalized, list_type, source=source, name=name, reason=reason)
        cache_delete(self.cache, self._cache_key(normalized))
        if created:
            audit.record(
                session,
                COMPLIANCE_ENTRY_ADDED,
                "compliance_entry",
                normalized[-4:],
                details={"list_type": list_type, "source": source},
                actor=actor_id or "system",
            )
        return created
