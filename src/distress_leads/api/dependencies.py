"""
FastAPI Dependencies

Provides dependency injection for database sessions, services and the
shared-secret checks on machine-to-machine endpoints.
"""
import hmac
from typing import Generator, Optional

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.distress_leads.db.session import SessionLocal
from src.distress_leads.services.compliance import ComplianceService
from src.distress_leads.services.lead_workflow import LeadWorkflowService
from src.distress_leads.utils.cache import get_redis_client


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Routers commit explicitly; anything not committed is rolled back on close.

    Yields:
        SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Session factory for endpoints that open their own transactions (agent cycle)."""
    return SessionLocal


def get_lead_workflow() -> LeadWorkflowService:
    return LeadWorkflowService(compliance=ComplianceService(cache=get_redis_client()))


def _secret_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    """Reject webhook calls without the configured secret (fails closed when unset)."""
    if not _secret_matches(x_webhook_secret, settings.ingest_webhook_secret):
        raise HTTPException(status_code=401, detail="Unauthorized: invalid webhook secret")


def require_cron_secret(x_cron_secret: Optional[str] = Header(None)) -> None:
    """Guard the agent trigger when a cron secret is configured."""
    if settings.cron_secret and not _secret_matches(x_cron_secret, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized: invalid cron secret")
