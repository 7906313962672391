"""
Error Taxonomy

Every failure the pipeline distinguishes has its own exception type. The API
layer maps them to HTTP status codes in a single exception handler
(see ``api/main.py``); batch and phase operations catch them per record and
collect them into ``errors`` lists.
"""
from typing import Any, Dict, List, Optional


class DistressLeadsError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": type(self).__name__, "detail": self.message}
        payload.update(self.context)
        return payload


class ValidationError(DistressLeadsError):
    """Malformed input. Rejected before any side effect."""

    status_code = 400


class DuplicateEvent(DistressLeadsError):
    """A distress event with the same fingerprint already exists."""

    status_code = 200

    def __init__(self, fingerprint: str):
        super().__init__("duplicate distress event", fingerprint=fingerprint)
        self.fingerprint = fingerprint


class ConflictError(DistressLeadsError):
    """Optimistic concurrency (lock_version) mismatch."""

    status_code = 409

    def __init__(self, lead_id: int, expected_version: int, current_version: Optional[int]):
        super().__init__(
            "Lead was modified by another user",
            lead_id=lead_id,
            expected_version=expected_version,
            current_version=current_version,
        )
        self.lead_id = lead_id
        self.expected_version = expected_version
        self.current_version = current_version


class IllegalTransitionError(DistressLeadsError):
    """Requested lead status change is not in the transition table."""

    status_code = 422

    def __init__(self, current: str, requested: str, allowed: List[str]):
        super().__init__(
            f"Illegal transition {current} -> {requested}",
            current=current,
            requested=requested,
            allowed=allowed,
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed


class ComplianceBlockedError(DistressLeadsError):
    """Contact-exposing action blocked by the compliance scrub."""

    status_code = 403

    def __init__(self, reasons: List[str], phone: Optional[str] = None):
        super().__init__("Compliance block", reasons=reasons)
        self.reasons = reasons
        self.phone = phone


class UpstreamError(DistressLeadsError):
    """External service returned non-success, timed out, or sent garbage."""

    status_code = 502

    def __init__(self, source: str, message: str, status: Optional[int] = None):
        super().__init__(message, source=source, status=status)
        self.source = source
        self.status = status


class PersistenceError(DistressLeadsError):
    """A store write failed for one record or phase."""

    status_code = 500


class NotFoundError(DistressLeadsError):
    """Referenced entity does not exist."""

    status_code = 404
