"""
Scoring Router

Predictive scoring on demand, weight calibration and score replay.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from src.distress_leads.api.dependencies import get_db
from src.distress_leads.api.schemas import (
    CalibrateRequest,
    CalibrateResponse,
    PredictRequest,
    PredictResponse,
    ReplayResponse,
)
from src.distress_leads.exceptions import ValidationError
from src.distress_leads.services.scoring_service import ScoringService

router = APIRouter(prefix="/api/v1/scoring", tags=["scoring"])


@router.post("/predict", response_model=PredictResponse)
def predict(request: PredictRequest, db: Session = Depends(get_db)):
    """Compute and store predictive scores for up to 50 properties."""
    property_ids = request.property_ids or ([request.property_id] if request.property_id else [])
    result = ScoringService().predict(db, property_ids)
    db.commit()
    return {
        "success": True,
        "model_version": result.model_version,
        "scored": len(result.predictions),
        "errors": result.errors,
        "predictions": [vars(p) for p in result.predictions],
    }


@router.post("/calibrate", response_model=CalibrateResponse)
def calibrate(request: CalibrateRequest, db: Session = Depends(get_db)):
    """
    Activate a new predictive weight schema.

    Returns:
        422 when the schema is not a convex combination
    """
    try:
        weight_set = ScoringService().calibrate(
            db, request.weights, model_version=request.model_version, actor_id=request.actor_id, notes=request.notes
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    db.commit()
    return {
        "success": True,
        "weight_set_id": weight_set.id,
        "model_version": weight_set.model_version,
        "weights": weight_set.weights,
    }


@router.post("/replay", response_model=ReplayResponse)
def replay(db: Session = Depends(get_db)):
    """Re-score every property from its stored events."""
    result = ScoringService().replay(db)
    db.commit()
    return {"success": True, "processed": result.processed, "errors": result.errors}
