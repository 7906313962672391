"""
FastAPI Main Application

Distress Leads REST API: inbound signals, lead workflow, property edits,
scoring and the agent cycle trigger.
"""
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from src.distress_leads.api.dependencies import get_db
from src.distress_leads.api.routers import agent, ingest, leads, properties, scoring
from src.distress_leads.api.schemas import HealthCheck
from src.distress_leads.db.session import health_check as database_health_check
from src.distress_leads.exceptions import DistressLeadsError
from src.distress_leads.utils.logger import get_logger, setup_logging

API_VERSION = "0.1.0"

setup_logging("api")
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Distress Leads API",
    description="REST API for distress signal ingestion, scoring and lead workflow",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Include routers
app.include_router(ingest.router)
app.include_router(leads.router)
app.include_router(properties.router)
app.include_router(scoring.router)
app.include_router(agent.router)


@app.exception_handler(DistressLeadsError)
async def domain_error_handler(request: Request, exc: DistressLeadsError):
    """Map domain errors to their HTTP status codes."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "api_request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health", response_model=HealthCheck, tags=["health"])
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
        Health status with database connectivity check
    """
    connected = database_health_check(db)
    return HealthCheck(
        status="healthy" if connected else "degraded",
        version=API_VERSION,
        database="connected" if connected else "error",
        timestamp=datetime.now(timezone.utc),
    )


@app.get("/", tags=["root"])
def root():
    """
    Root endpoint.

    Returns:
        API information
    """
    return {
        "name": "Distress Leads API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.distress_leads.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
