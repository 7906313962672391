"""
Agent Router

Cron trigger for one agent cycle.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import sessionmaker

from src.distress_leads.agent.orchestrator import run_agent_cycle
from src.distress_leads.api.dependencies import get_session_factory, require_cron_secret

router = APIRouter(prefix="/api/v1/agent", tags=["agent"])


@router.post("/cycle", dependencies=[Depends(require_cron_secret)])
async def agent_cycle(session_factory: sessionmaker = Depends(get_session_factory)):
    """Run one cycle and return its phase outcomes."""
    result = await run_agent_cycle(session_factory=session_factory)
    return result.to_dict()
