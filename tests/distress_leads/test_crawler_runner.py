"""
Tests for Crawler Runner
"""
import asyncio
from datetime import date
from unittest.mock import Mock

from src.distress_leads.db.repository import EventLogRepository, PropertyRepository
from src.distress_leads.ingestion.crawler_runner import (
    CRAWLED_SEVERITY,
    crawled_to_ingest,
    run_all_crawlers,
    run_crawler,
)
from src.distress_leads.models.crawled import CrawledRecord
from src.distress_leads.services.audit import CRAWLER_RUN

AS_OF = date(2025, 6, 1)


def _crawled(**overrides) -> CrawledRecord:
    values = dict(
        name="Jane Marie Doe",
        address="123 Main St",
        city="Spokane Valley",
        state="WA",
        county="Spokane",
        date="2025-05-20",
        source="obituary:test_obits",
        distress_type="probate",
    )
    values.update(overrides)
    return CrawledRecord(**values)


class FakeModule:
    """Harvesting module returning fixed records."""

    def __init__(self, id, records=None, error=None):
        self.id = id
        self.name = f"Fake {id}"
        self._records = records or []
        self._error = error

    async def crawl(self):
        if self._error is not None:
            raise self._error
        return list(self._records)


class TestCrawledToIngest:
    """Tests for mapping harvested records onto the ingest shape."""

    def test_mapping(self):
        record = crawled_to_ingest(_crawled(raw_data={"apn": "35191.0123"}), AS_OF)

        assert record.apn == "35191.0123"
        assert record.apn_style == "compact"
        assert record.promotion_source == "crawler"
        assert record.fingerprint_source == "obituary:test_obits"
        assert record.owner_name == "Jane Marie Doe"
        assert record.tags == ["probate"]
        signal = record.signals[0]
        assert signal.severity == CRAWLED_SEVERITY
        assert signal.event_date == date(2025, 5, 20)
        assert record.owner_flags["crawled_at"] == "2025-06-01"

    def test_no_apn_hint(self):
        assert crawled_to_ingest(_crawled(), AS_OF).apn is None


class TestRunCrawler:
    """Tests for run_crawler and run_all_crawlers."""

    def test_records_ingested_and_audited(self, session_factory, pipeline):
        module = FakeModule("obituary_daily", [_crawled(), _crawled(name="John Roe", address="9 Elm St")])

        result = asyncio.run(run_crawler(module, session_factory=session_factory, pipeline=pipeline))

        assert result.crawled == 2
        assert result.scored == 2
        assert result.errors == 0
        assert result.duplicates == 0
        with session_factory() as session:
            assert PropertyRepository().count(session) == 2
            entry = EventLogRepository().list_by_action(session, CRAWLER_RUN)[0]
            assert entry.entity_id == "obituary_daily"
            assert entry.details["crawler_name"] == "Fake obituary_daily"
            assert entry.details["scored"] == 2

    def test_second_run_counts_duplicates(self, session_factory, pipeline):
        module = FakeModule("obituary_daily", [_crawled()])

        asyncio.run(run_crawler(module, session_factory=session_factory, pipeline=pipeline))
        again = asyncio.run(run_crawler(module, session_factory=session_factory, pipeline=pipeline))

        assert again.duplicates == 1
        with session_factory() as session:
            assert PropertyRepository().count(session) == 1

    def test_crawl_failure_still_audited(self, session_factory, pipeline):
        module = FakeModule("court_docket_daily", error=RuntimeError("site down"))

        result = asyncio.run(run_crawler(module, session_factory=session_factory, pipeline=pipeline))

        assert result.crawled == 0
        assert result.errors == 1
        assert result.error_messages == ["crawl: site down"]
        with session_factory() as session:
            entries = EventLogRepository().list_by_action(session, CRAWLER_RUN)
            assert entries[0].details["errors"] == 1

    def test_failed_record_counted(self, session_factory):
        pipeline = Mock()
        pipeline.as_of = AS_OF
        pipeline.try_process.return_value = (None, "Zed: boom")
        module = FakeModule("utility_shutoff", [_crawled(name="Zed")])

        result = asyncio.run(run_crawler(module, session_factory=session_factory, pipeline=pipeline))

        assert result.crawled == 1
        assert result.scored == 0
        assert result.error_messages == ["Zed: boom"]
        with session_factory() as session:
            assert EventLogRepository().list_by_action(session, CRAWLER_RUN)[0].details["errors"] == 1

    def test_run_all_continues_after_failure(self, session_factory, pipeline):
        modules = [
            FakeModule("court_docket_daily", error=RuntimeError("boom")),
            FakeModule("obituary_daily", [_crawled()]),
        ]

        results = asyncio.run(run_all_crawlers(modules, session_factory=session_factory, pipeline=pipeline))

        assert [r.crawler_id for r in results] == ["court_docket_daily", "obituary_daily"]
        assert results[0].errors == 1
        assert results[1].scored == 1
        with session_factory() as session:
            assert len(EventLogRepository().list_by_action(session, CRAWLER_RUN)) == 2

    def test_malformed_record_keeps_siblings(self, session_factory, pipeline):
        modules = [
            FakeModule("obituary_daily", [_crawled(), {"name": "bad"}]),
            FakeModule("court_docket_daily", [_crawled(name="Mary Smith", address="4 Ash Ct", distress_type="divorce",
                                                       source="court:test_court")]),
        ]

        results = asyncio.run(run_all_crawlers(modules, session_factory=session_factory, pipeline=pipeline))

        first, second = results
        assert first.crawled == 2
        assert first.scored == 1
        assert first.errors == 1
        assert first.error_messages[0].startswith("record 1: ValidationError")
        assert second.scored == 1
        with session_factory() as session:
            assert PropertyRepository().count(session) == 2
            assert len(EventLogRepository().list_by_action(session, CRAWLER_RUN)) == 2

    def test_unexpected_pipeline_error_isolated_to_record(self, session_factory, pipeline):
        calls = []
        real_try_process = pipeline.try_process

        def flaky_try_process(session, record):
            calls.append(record.owner_name)
            if record.owner_name == "John Roe":
                raise KeyError("missing_factor")
            return real_try_process(session, record)

        pipeline.try_process = flaky_try_process
        module = FakeModule("obituary_daily", [_crawled(name="John Roe", address="9 Elm St"), _crawled()])

        result = asyncio.run(run_crawler(module, session_factory=session_factory, pipeline=pipeline))

        assert calls == ["John Roe", "Jane Marie Doe"]
        assert result.scored == 1
        assert result.error_messages == ["record 0: KeyError: 'missing_factor'"]
        with session_factory() as session:
            assert PropertyRepository().count(session) == 1
            assert EventLogRepository().list_by_action(session, CRAWLER_RUN)[0].details["errors"] == 1

    def test_run_all_survives_a_raising_run(self, session_factory, pipeline, monkeypatch):
        from src.distress_leads.ingestion import crawler_runner

        real_run_crawler = crawler_runner.run_crawler

        async def sometimes_broken(module, session_factory=None, pipeline=None):
            if module.id == "utility_shutoff":
                raise RuntimeError("database went away")
            return await real_run_crawler(module, session_factory=session_factory, pipeline=pipeline)

        monkeypatch.setattr(crawler_runner, "run_crawler", sometimes_broken)
        modules = [FakeModule("utility_shutoff", [_crawled()]), FakeModule("obituary_daily", [_crawled()])]

        results = asyncio.run(run_all_crawlers(modules, session_factory=session_factory, pipeline=pipeline))

        assert results[0].errors == 1
        assert results[0].error_messages == ["run: database went away"]
        assert results[1].scored == 1
