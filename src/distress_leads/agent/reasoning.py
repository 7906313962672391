"""
Reasoning Client

Asks a chat-completions model which sources the agent cycle should run,
given the last day's ingest outcomes and recently closed deals. The answer
is a Directive; any failure (no API key, transport error, unparseable
reply) yields no directive and the cycle runs every source.
"""
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from config.settings import settings
from src.distress_leads.db.models import EventLog, Lead
from src.distress_leads.exceptions import UpstreamError
from src.distress_leads.services.audit import AGENT_PHASE, CRAWLER_RUN
from src.distress_leads.services.lead_status import ACTIVE_STATUSES, LeadStatus
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

SOURCE = "reasoning"

KNOWN_SOURCES = ("obituary", "court_docket", "utility_shutoff", "propertyradar", "attom")

JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

SYSTEM_PROMPT = " ".join([
    "You are the reasoning engine of a real estate distress lead pipeline.",
    "You analyse recent ingest results and closed-deal feedback to decide which data sources to run next.",
    "Always respond with valid JSON matching this schema:",
    '{"next_sources": string[], "priority_adjustments": [{"signal_type": string,',
    '"adjustment": "increase"|"decrease"|"neutral", "reason": string}],',
    '"new_source_suggestions": string[], "reasoning": string}.',
    f"Only recommend sources that exist: {', '.join(KNOWN_SOURCES)}.",
    "Only public data; never recommend contacting anyone.",
])


class PriorityAdjustment(BaseModel):
    signal_type: str
    adjustment: str = "neutral"
    reason: str = ""


class Directive(BaseModel):
    """Which sources to run this cycle, and why."""

    next_sources: List[str] = Field(default_factory=lambda: list(KNOWN_SOURCES))
    priority_adjustments: List[PriorityAdjustment] = Field(default_factory=list)
    new_source_suggestions: List[str] = Field(default_factory=list)
    reasoning: str = "No reasoning provided"

    @field_validator("next_sources")
    @classmethod
    def keep_known_sources(cls, value: List[str]) -> List[str]:
        return [s for s in value if s in KNOWN_SOURCES]

    def allows(self, source: str) -> bool:
        return source in self.next_sources


def parse_directive(raw: str) -> Optional[Directive]:
    """
    First {...} object in the reply, validated into a Directive.

    Returns:
        Directive, or None when the reply holds no valid object
    """
    match = JSON_OBJECT_RE.search(raw or "")
    if not match:
        return None
    try:
        return Directive.model_validate(json.loads(match.group(0)))
    except (ValueError, PydanticValidationError) as e:
        logger.warning("reasoning_reply_invalid", error=str(e))
        return None


def build_cycle_context(session: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Recent ingest outcomes, closed deals and active lead tags."""
    now = now or datetime.now(timezone.utc)

    recent_logs = session.scalars(
        select(EventLog)
        .where(EventLog.action.in_([CRAWLER_RUN, AGENT_PHASE]), EventLog.created_at >= now - timedelta(days=1))
        .order_by(EventLog.id.desc())
        .limit(20)
    ).all()
    recent_runs = [
        {
            "source": log.entity_id,
            "crawled": log.details.get("crawled", log.details.get("records_processed", 0)),
            "promoted": log.details.get("promoted", 0),
            "errors": log.details.get("errors", 0),
        }
        for log in recent_logs
    ]

    closed = session.scalars(
        select(Lead)
        .where(Lead.status == LeadStatus.CLOSED.value, Lead.updated_at >= now - timedelta(days=30))
        .limit(20)
    ).all()
    closed_deals = [
        {
            "signal_types": lead.tags or [],
            "heat_score": lead.priority,
            "days_to_close": (lead.updated_at - lead.created_at).days if lead.updated_at and lead.created_at else None,
        }
        for lead in closed
    ]

    active_statuses = [s.value for s in ACTIVE_STATUSES]
    distribution: Dict[str, int] = {}
    for tags in session.scalars(select(Lead.tags).where(Lead.status.in_(active_statuses)).limit(200)):
        for tag in tags or []:
            distribution[tag] = distribution.get(tag, 0) + 1
    active_count = session.scalar(select(func.count()).select_from(Lead).where(Lead.status.in_(active_statuses)))

    return {
        "recent_runs": recent_runs,
        "closed_deals": closed_deals,
        "signal_distribution": distribution,
        "active_leads": active_count or 0,
    }


def build_prompt(context: Dict[str, Any]) -> str:
    runs = context["recent_runs"]
    deals = context["closed_deals"]
    distribution = sorted(context["signal_distribution"].items(), key=lambda item: item[1], reverse=True)
    lines = [
        "Current state of the lead pipeline:",
        "",
        f"Active leads: {context['active_leads']}",
        "",
        "Recent runs (last 24h):",
        *([f"  - {r['source']}: {r['crawled']} crawled, {r['promoted']} promoted, {r['errors']} errors"
           for r in runs] or ["  No recent runs"]),
        "",
        "Signal distribution among active leads:",
        *([f"  - {signal}: {count}" for signal, count in distribution] or ["  No signals yet"]),
        "",
        "Closed deals (last 30 days):",
        *([f"  - signals: {','.join(d['signal_types'])} | heat: {d['heat_score']} | days to close: {d['days_to_close']}"
           for d in deals] or ["  No closed deals yet"]),
        "",
        "Which sources should run this cycle? Should any signal type be re-weighted?",
        "Are there new public data sources worth adding?",
    ]
    return "\n".join(lines)


class ReasoningClient:
    """
    Chat-completions client (temperature 0).

    Args:
        api_key: Override settings.reasoning_api_key
        endpoint: Override settings.reasoning_endpoint
        model: Override settings.reasoning_model
        timeout: Request timeout in seconds
        client: Pre-built httpx.AsyncClient (tests pass one with a mock transport)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key or settings.reasoning_api_key
        self.endpoint = endpoint or settings.reasoning_endpoint
        self.model = model or settings.reasoning_model
        self.timeout = timeout or settings.reasoning_timeout_seconds
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str) -> str:
        """
        Send one prompt and return the reply text.

        Raises:
            UpstreamError: Missing key, transport failure or non-2xx status
        """
        if not self.api_key:
            raise UpstreamError(SOURCE, "REASONING_API_KEY not configured")

        body = {
            "model": self.model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

        client = self.client or httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.post(self.endpoint, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamError(SOURCE, f"Reasoning request failed: {e}") from e
        finally:
            if self.client is None:
                await client.aclose()

        if not response.is_success:
            raise UpstreamError(
                SOURCE,
                f"Reasoning API {response.status_code}: {response.text[:200]}",
                status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(SOURCE, "Reasoning API returned non-JSON body") from e

        choices = data.get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""

    async def get_directive(self, context: Dict[str, Any]) -> Optional[Directive]:
        """
        Directive for this cycle, or None (run everything).
        """
        if not self.configured:
            logger.info("reasoning_skipped", reason="api key not configured")
            return None
        try:
            raw = await self.complete(build_prompt(context))
        except UpstreamError as e:
            logger.warning("reasoning_failed", error=e.message, status=e.status)
            return None

        directive = parse_directive(raw)
        if directive is not None:
            logger.info(
                "reasoning_directive",
                next_sources=directive.next_sources,
                adjustments=len(directive.priority_adjustments),
                suggestions=len(directive.new_source_suggestions),
            )
        return directive
