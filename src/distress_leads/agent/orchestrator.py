"""
Agent Cycle Orchestrator

One scheduled cycle, run every four hours:

    Phase 0  reasoning       directive on which sources to run
    Phase 1  propertyradar   elite seed (targeted, paid)
    Phase 2  crawlers        public-page harvesting modules
    Phase 3  attom           bulk daily delta (paid)

Phases are isolated from each other: one failing never blocks the next.
Every phase outcome is audited as ``agent.phase`` and tracked as a
DataIngestionRun. Phases not yet started when the wall-clock budget runs out
are reported as skipped with reason ``budget_exhausted``.
"""
import argparse
import asyncio
import json
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from config.settings import settings
from src.distress_leads.agent.reasoning import Directive, ReasoningClient, build_cycle_context
from src.distress_leads.db.repository import DataIngestionRunRepository
from src.distress_leads.db.session import session_scope
from src.distress_leads.ingestion.attom_delta import run_attom_delta
from src.distress_leads.ingestion.crawler_runner import run_all_crawlers
from src.distress_leads.ingestion.propertyradar_seed import run_propertyradar_seed
from src.distress_leads.ingestion.record_pipeline import RecordPipeline
from src.distress_leads.scrapers import default_crawlers
from src.distress_leads.scrapers.attom_client import AttomClient
from src.distress_leads.scrapers.base import CrawlerModule
from src.distress_leads.scrapers.propertyradar_client import PropertyRadarClient
from src.distress_leads.services.audit import AGENT_CYCLE, AGENT_PHASE, audit
from src.distress_leads.utils.logger import bind_cycle_context, clear_cycle_context, get_logger

logger = get_logger(__name__)

PHASE_REASONING = "reasoning"
PHASE_PROPERTYRADAR = "propertyradar"
PHASE_CRAWLERS = "crawlers"
PHASE_ATTOM = "attom"

SUCCESS = "success"
PARTIAL = "partial"
FAILED = "failed"
SKIPPED = "skipped"

BUDGET_EXHAUSTED = "budget_exhausted"
NOT_CONFIGURED = "not_configured"
NOT_IN_DIRECTIVE = "not_in_directive"

RUN_STATUS = {SUCCESS: "success", PARTIAL: "partial", FAILED: "failure"}

# counts returned by a phase: processed, inserted, updated, failed, plus extras
PhaseWork = Tuple[Dict[str, Any], List[str], Optional[float]]


def directive_key(crawler_id: str) -> str:
    """Crawler module id -> source name used in directives ("obituary_daily" -> "obituary")."""
    return crawler_id[: -len("_daily")] if crawler_id.endswith("_daily") else crawler_id


@dataclass
class PhaseOutcome:
    name: str
    status: str
    reason: Optional[str] = None
    counts: Dict[str, Any] = field(default_factory=dict)
    cost: Optional[float] = None
    elapsed_ms: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AgentCycleResult:
    success: bool
    directive: Optional[Directive]
    phases: List[PhaseOutcome]
    elapsed_ms: int
    timestamp: str

    def phase(self, name: str) -> Optional[PhaseOutcome]:
        return next((p for p in self.phases if p.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "directive": self.directive.model_dump() if self.directive else None,
            "phases": [p.to_dict() for p in self.phases],
            "elapsed_ms": self.elapsed_ms,
            "timestamp": self.timestamp,
        }


class AgentCycle:
    """
    One agent cycle.

    Args:
        session_factory: Session factory (default SessionLocal)
        counties: Counties for the catalog phases (default settings.agent_counties)
        reasoning: Reasoning client
        crawlers: Harvesting modules (default one of each)
        propertyradar_client: Pre-built client; built from settings when a key is configured
        attom_client: Pre-built client; built from settings when a key is configured
        budget_seconds: Wall-clock budget (default settings.agent_cycle_budget_seconds)
        clock: Monotonic clock in seconds (tests pass a fake)
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        counties: Optional[Sequence[str]] = None,
        reasoning: Optional[ReasoningClient] = None,
        crawlers: Optional[Sequence[CrawlerModule]] = None,
        propertyradar_client: Optional[PropertyRadarClient] = None,
        attom_client: Optional[AttomClient] = None,
        pipeline: Optional[RecordPipeline] = None,
        budget_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.counties = list(counties or settings.agent_counties)
        self.reasoning = reasoning or ReasoningClient()
        self.crawlers = list(crawlers) if crawlers is not None else default_crawlers()
        self.propertyradar_client = propertyradar_client
        self.attom_client = attom_client
        self.pipeline = pipeline
        self.budget_seconds = settings.agent_cycle_budget_seconds if budget_seconds is None else budget_seconds
        self.clock = clock
        self.runs = DataIngestionRunRepository()
        self.directive: Optional[Directive] = None
        self._started = 0.0

    def elapsed(self) -> float:
        return self.clock() - self._started

    def budget_exhausted(self) -> bool:
        return self.elapsed() >= self.budget_seconds

    def selected(self, source: str) -> bool:
        return self.directive is None or self.directive.allows(source)

    async def run(self) -> AgentCycleResult:
        self._started = self.clock()
        started_at = datetime.now(timezone.utc)
        bind_cycle_context(cycle_id=started_at.isoformat())
        try:
            return await self._run(started_at)
        finally:
            clear_cycle_context()

    async def _run(self, started_at: datetime) -> AgentCycleResult:
        logger.info("agent_cycle_started", counties=self.counties, budget_seconds=self.budget_seconds)

        phases = [
            await self.run_phase(PHASE_REASONING, self.reasoning_phase, configured=self.reasoning.configured),
            await self.run_phase(
                PHASE_PROPERTYRADAR,
                self.propertyradar_phase,
                configured=self.propertyradar_client is not None or bool(settings.propertyradar_api_key),
            ),
            await self.run_phase(PHASE_CRAWLERS, self.crawler_phase),
            await self.run_phase(
                PHASE_ATTOM,
                self.attom_phase,
                configured=self.attom_client is not None or bool(settings.attom_api_key),
            ),
        ]

        ran = [p for p in phases if p.status != SKIPPED]
        success = any(p.status in (SUCCESS, PARTIAL) for p in ran) or not ran
        result = AgentCycleResult(
            success=success,
            directive=self.directive,
            phases=phases,
            elapsed_ms=int(self.elapsed() * 1000),
            timestamp=started_at.isoformat(),
        )

        with session_scope(self.session_factory) as session:
            audit.record(session, AGENT_CYCLE, "agent_cycle", result.timestamp, details=result.to_dict())
        logger.info(
            "agent_cycle_complete",
            success=result.success,
            elapsed_ms=result.elapsed_ms,
            phases={p.name: p.status for p in phases},
        )
        return result

    async def run_phase(
        self,
        name: str,
        work: Callable[[], Awaitable[PhaseWork]],
        configured: bool = True,
    ) -> PhaseOutcome:
        """Run one phase with budget, configuration and directive gates."""
        if self.budget_exhausted():
            outcome = PhaseOutcome(name, SKIPPED, reason=BUDGET_EXHAUSTED)
        elif not configured:
            outcome = PhaseOutcome(name, SKIPPED, reason=NOT_CONFIGURED)
        elif name in (PHASE_PROPERTYRADAR, PHASE_ATTOM) and not self.selected(name):
            outcome = PhaseOutcome(name, SKIPPED, reason=NOT_IN_DIRECTIVE)
        else:
            outcome = await self._execute(name, work)

        with session_scope(self.session_factory) as session:
            audit.record(session, AGENT_PHASE, "agent_phase", name, details=outcome.to_dict())
        log = logger.warning if outcome.status == FAILED else logger.info
        log("agent_phase_complete", phase=name, status=outcome.status, reason=outcome.reason,
            elapsed_ms=outcome.elapsed_ms, errors=len(outcome.errors))
        return outcome

    async def _execute(self, name: str, work: Callable[[], Awaitable[PhaseWork]]) -> PhaseOutcome:
        with session_scope(self.session_factory) as session:
            run_id = self.runs.create_run(session, source_type=name).id

        phase_started = self.clock()
        try:
            counts, errors, cost = await work()
            status = PARTIAL if errors else SUCCESS
            outcome = PhaseOutcome(name, status, counts=counts, cost=cost, errors=errors)
        except Exception as e:
            logger.error("agent_phase_failed", phase=name, error=str(e), error_type=type(e).__name__)
            outcome = PhaseOutcome(name, FAILED, reason=type(e).__name__, errors=[str(e)])
        outcome.elapsed_ms = int((self.clock() - phase_started) * 1000)

        with session_scope(self.session_factory) as session:
            self.runs.complete_run(
                session,
                run_id,
                status=RUN_STATUS[outcome.status],
                records_processed=outcome.counts.get("processed", 0),
                records_inserted=outcome.counts.get("inserted", 0),
                records_updated=outcome.counts.get("updated", 0),
                records_failed=outcome.counts.get("failed", len(outcome.errors)),
                error_message=outcome.errors[0] if outcome.errors else None,
                error_details={"errors": outcome.errors, "cost": outcome.cost} if outcome.errors else None,
            )
        return outcome

    async def reasoning_phase(self) -> PhaseWork:
        with session_scope(self.session_factory) as session:
            context = build_cycle_context(session)
        self.directive = await self.reasoning.get_directive(context)
        counts = {
            "processed": 1,
            "directive": self.directive is not None,
            "next_sources": self.directive.next_sources if self.directive else None,
        }
        return counts, [], None

    async def propertyradar_phase(self) -> PhaseWork:
        client = self.propertyradar_client or PropertyRadarClient()
        result = await asyncio.to_thread(
            run_propertyradar_seed, self.session_factory, self.counties, client, self.pipeline
        )
        counts = {
            "processed": result.scored,
            "inserted": result.promoted,
            "updated": result.updated,
            "failed": len(result.errors),
            "fetched": result.fetched,
            "elite": result.elite,
        }
        return counts, result.errors, result.total_cost

    async def crawler_phase(self) -> PhaseWork:
        modules = [m for m in self.crawlers if self.selected(directive_key(m.id))]
        if not modules:
            return {"processed": 0, "modules": []}, [], None

        results = await run_all_crawlers(modules, session_factory=self.session_factory, pipeline=self.pipeline)
        counts = {
            "processed": sum(r.crawled for r in results),
            "inserted": sum(r.promoted for r in results),
            "updated": sum(r.updated for r in results),
            "failed": sum(r.errors for r in results),
            "duplicates": sum(r.duplicates for r in results),
            "modules": [r.to_dict() for r in results],
        }
        errors = [f"{r.crawler_id}: {m}" for r in results for m in r.error_messages]
        return counts, errors, None

    async def attom_phase(self) -> PhaseWork:
        client = self.attom_client or AttomClient()
        result = await asyncio.to_thread(run_attom_delta, self.session_factory, self.counties, client, self.pipeline)
        data = result.to_dict()
        counts = {
            "processed": data["upserted"],
            "inserted": data["promoted"],
            "updated": sum(c.updated for c in result.counties),
            "failed": len(result.errors),
            "api_calls": data["api_calls"],
            "counties": data["counties"],
        }
        return counts, result.errors, result.estimated_cost


async def run_agent_cycle(
    session_factory: Optional[sessionmaker] = None,
    counties: Optional[Sequence[str]] = None,
    **options: Any,
) -> AgentCycleResult:
    """Run one cycle; see AgentCycle for options."""
    return await AgentCycle(session_factory=session_factory, counties=counties, **options).run()


def main():
    """Entry point for the scheduled agent cycle."""
    from src.distress_leads.utils.logger import setup_logging

    parser = argparse.ArgumentParser(description="Run one distress lead agent cycle")
    parser.add_argument(
        "--counties",
        nargs="+",
        default=None,
        help=f"Counties to pull (default: {' '.join(settings.agent_counties)})",
    )
    parser.add_argument(
        "--budget",
        type=float,
        default=None,
        help=f"Wall-clock budget in seconds (default: {settings.agent_cycle_budget_seconds:g})",
    )
    args = parser.parse_args()

    setup_logging("agent")
    result = asyncio.run(run_agent_cycle(counties=args.counties, budget_seconds=args.budget))
    print(json.dumps(result.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    main()
