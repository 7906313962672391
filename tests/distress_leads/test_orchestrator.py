"""
Tests for the agent cycle orchestrator.
"""
import asyncio
from datetime import date
from unittest.mock import Mock

import pytest
from sqlalchemy import select

from config.settings import settings
from src.distress_leads.agent.orchestrator import (
    BUDGET_EXHAUSTED,
    FAILED,
    NOT_CONFIGURED,
    NOT_IN_DIRECTIVE,
    SKIPPED,
    SUCCESS,
    AgentCycle,
    directive_key,
)
from src.distress_leads.agent.reasoning import Directive
from src.distress_leads.db.models import DataIngestionRun, EventLog
from src.distress_leads.ingestion.record_pipeline import RecordPipeline
from src.distress_leads.scrapers.attom_client import DailyDelta
from src.distress_leads.services.audit import AGENT_CYCLE, AGENT_PHASE

AS_OF = date(2025, 6, 1)


class FakeReasoning:

    def __init__(self, directive=None, configured=True, error=None):
        self.configured = configured
        self._directive = directive
        self._error = error

    async def get_directive(self, context):
        if self._error is not None:
            raise self._error
        return self._directive


class FakeModule:

    def __init__(self, id):
        self.id = id
        self.name = f"Fake {id}"
        self.crawled = False

    async def crawl(self):
        self.crawled = True
        return []


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture(autouse=True)
def no_catalog_keys(monkeypatch):
    monkeypatch.setattr(settings, "propertyradar_api_key", None)
    monkeypatch.setattr(settings, "attom_api_key", None)


def empty_attom_client():
    client = Mock()
    client.pull_daily_delta.return_value = DailyDelta(api_calls=1)
    return client


def empty_propertyradar_client():
    client = Mock()
    client.search.return_value = {"results": [], "total_cost": 0.0}
    return client


def cycle(session_factory, **options):
    options.setdefault("reasoning", FakeReasoning(configured=False))
    options.setdefault("crawlers", [])
    return AgentCycle(
        session_factory=session_factory,
        counties=["Spokane"],
        pipeline=RecordPipeline(as_of=AS_OF),
        budget_seconds=options.pop("budget_seconds", 120),
        **options,
    )


def audit_actions(session_factory):
    with session_factory() as session:
        return session.scalars(select(EventLog.action).order_by(EventLog.id)).all()


class TestDirectiveKey:

    def test_daily_suffix_dropped(self):
        assert directive_key("obituary_daily") == "obituary"
        assert directive_key("court_docket") == "court_docket"


class TestAgentCycle:

    def test_unconfigured_phases_skipped(self, session_factory):
        result = asyncio.run(cycle(session_factory).run())

        statuses = {p.name: (p.status, p.reason) for p in result.phases}
        assert statuses == {
            "reasoning": (SKIPPED, NOT_CONFIGURED),
            "propertyradar": (SKIPPED, NOT_CONFIGURED),
            "crawlers": (SUCCESS, None),
            "attom": (SKIPPED, NOT_CONFIGURED),
        }
        assert result.success is True
        assert result.directive is None
        assert audit_actions(session_factory) == [AGENT_PHASE] * 4 + [AGENT_CYCLE]

        with session_factory() as session:
            runs = session.scalars(select(DataIngestionRun)).all()
        assert [(r.source_type, r.status) for r in runs] == [("crawlers", "success")]

    def test_zero_budget_skips_everything(self, session_factory):
        result = asyncio.run(cycle(session_factory, budget_seconds=0).run())

        assert all(p.status == SKIPPED and p.reason == BUDGET_EXHAUSTED for p in result.phases)
        assert result.success is True

    def test_budget_runs_out_mid_cycle(self, session_factory):
        clock = FakeClock()
        propertyradar = empty_propertyradar_client()

        def slow_search(counties, limit=None):
            clock.now += 200
            return {"results": [], "total_cost": 0.0}

        propertyradar.search.side_effect = slow_search
        attom = empty_attom_client()

        result = asyncio.run(
            cycle(session_factory, clock=clock, propertyradar_client=propertyradar, attom_client=attom).run()
        )

        assert result.phase("propertyradar").status == SUCCESS
        assert result.phase("propertyradar").elapsed_ms == 200000
        assert result.phase("crawlers").reason == BUDGET_EXHAUSTED
        assert result.phase("attom").reason == BUDGET_EXHAUSTED
        attom.pull_daily_delta.assert_not_called()

    def test_directive_limits_sources(self, session_factory):
        obituary, court = FakeModule("obituary_daily"), FakeModule("court_docket_daily")
        propertyradar, attom = empty_propertyradar_client(), empty_attom_client()
        reasoning = FakeReasoning(Directive(next_sources=["obituary"]))

        result = asyncio.run(
            cycle(
                session_factory,
                reasoning=reasoning,
                crawlers=[obituary, court],
                propertyradar_client=propertyradar,
                attom_client=attom,
            ).run()
        )

        assert result.phase("reasoning").status == SUCCESS
        assert result.phase("reasoning").counts["next_sources"] == ["obituary"]
        assert result.phase("propertyradar").reason == NOT_IN_DIRECTIVE
        assert result.phase("attom").reason == NOT_IN_DIRECTIVE
        assert obituary.crawled is True
        assert court.crawled is False
        propertyradar.search.assert_not_called()
        assert result.to_dict()["directive"]["next_sources"] == ["obituary"]

    def test_failed_phase_isolated(self, session_factory):
        attom = Mock()
        attom.pull_daily_delta.side_effect = RuntimeError("socket closed")

        result = asyncio.run(
            cycle(session_factory, propertyradar_client=empty_propertyradar_client(), attom_client=attom).run()
        )

        failed = result.phase("attom")
        assert failed.status == FAILED
        assert failed.reason == "RuntimeError"
        assert failed.errors == ["socket closed"]
        assert result.phase("propertyradar").status == SUCCESS
        assert result.success is True

        with session_factory() as session:
            run = session.scalars(select(DataIngestionRun).where(DataIngestionRun.source_type == "attom")).one()
        assert run.status == "failure"
        assert run.error_message == "socket closed"

    def test_all_phases_failing_fails_cycle(self, session_factory):
        agent = cycle(session_factory, reasoning=FakeReasoning(error=RuntimeError("llm down")))

        async def broken_crawlers():
            raise RuntimeError("no crawlers")

        agent.crawler_phase = broken_crawlers
        result = asyncio.run(agent.run())

        assert result.phase("reasoning").status == FAILED
        assert result.phase("crawlers").status == FAILED
        assert result.success is False
