"""
Distress Event Deduplication

Events are deduplicated by a content fingerprint stored in a unique column.
Ingestion inserts optimistically and treats a uniqueness violation as
"already seen" instead of pre-checking, so concurrent writers cannot both
insert the same event.
"""
import hashlib
from typing import Optional

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION_PGCODE = "23505"
SQLITE_UNIQUE_MESSAGE = "UNIQUE constraint failed"


def distress_fingerprint(apn: str, county: str, event_type: str, source: str) -> str:
    """
    Deterministic fingerprint for one distress observation.

    Args:
        apn: Normalized APN
        county: Normalized county
        event_type: Distress type (probate, tax_lien, ...)
        source: Source identifier (e.g. "obituary:spokesman_obits")

    Returns:
        64-character SHA-256 hex digest
    """
    payload = f"{apn}:{county}:{event_type}:{source}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _pgcode(exc: IntegrityError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None)


def is_duplicate_error(exc: BaseException) -> bool:
    """
    True only for a uniqueness violation.

    Foreign key, not-null and check violations are real failures and must
    propagate.
    """
    if not isinstance(exc, IntegrityError):
        return False
    if _pgcode(exc) == UNIQUE_VIOLATION_PGCODE:
        return True
    return SQLITE_UNIQUE_MESSAGE in str(getattr(exc, "orig", exc))
