"""
Ingest Router

Inbound push of pre-scored leads and authenticated webhook batches.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.distress_leads.api.dependencies import get_db, require_webhook_secret
from src.distress_leads.api.schemas import RangerPushResponse
from src.distress_leads.models.ingest import RangerPushPayload, WebhookPayload
from src.distress_leads.services.signal_ingest import SignalIngestService

router = APIRouter(prefix="/api/v1/ingest", tags=["ingest"])


@router.post("/ranger-push", response_model=RangerPushResponse)
def ranger_push(payload: RangerPushPayload, db: Session = Depends(get_db)):
    """
    Receive one pre-scored lead.

    The whole push is one transaction: a failure leaves nothing behind.
    """
    result = SignalIngestService().ranger_push(db, payload)
    db.commit()
    return result.to_dict()


@router.post("/webhook", dependencies=[Depends(require_webhook_secret)])
def webhook(payload: WebhookPayload, db: Session = Depends(get_db)):
    """
    Receive a batch of records from an external source.

    Records fail independently; the response lists each record's status.
    """
    result = SignalIngestService().webhook_batch(db, payload)
    db.commit()
    return result.to_dict()
