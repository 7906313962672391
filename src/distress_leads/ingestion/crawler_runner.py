"""
Crawler Runner

Drives harvesting modules and feeds their records through the shared record
pipeline. Every module run is appended to the audit log as ``crawler.run``,
whatever its outcome.
"""
import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from config.settings import settings
from src.distress_leads.db.session import session_scope
from src.distress_leads.ingestion.record_pipeline import IngestRecord, RecordPipeline, SignalObservation
from src.distress_leads.models.crawled import CrawledRecord
from src.distress_leads.scrapers.base import CrawlerModule
from src.distress_leads.services.audit import CRAWLER_RUN, audit
from src.distress_leads.services.promotion import PROMOTED, UPDATED
from src.distress_leads.utils.coercion import parse_date, today_utc
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

CRAWLER_PROMOTION_SOURCE = "crawler"
CRAWLED_SEVERITY = 6


@dataclass
class CrawlRunResult:
    """Counters for one module run."""
    crawler_id: str
    crawled: int = 0
    scored: int = 0
    promoted: int = 0
    updated: int = 0
    duplicates: int = 0
    errors: int = 0
    elapsed_ms: int = 0
    error_messages: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def crawled_to_ingest(record: CrawledRecord, as_of: date) -> IngestRecord:
    """Map a harvested record onto the shared ingest shape."""
    raw_data = {
        "name": record.name,
        "date": record.date,
        "link": record.link,
        "case_type": record.case_type,
        **record.raw_data,
    }
    return IngestRecord(
        county=record.county,
        apn=record.apn_hint,
        apn_style="compact",
        fingerprint_source=record.source,
        promotion_source=CRAWLER_PROMOTION_SOURCE,
        signals=[
            SignalObservation(
                event_type=record.distress_type,
                severity=CRAWLED_SEVERITY,
                event_date=parse_date(record.date),
                raw_data=raw_data,
            )
        ],
        address=record.address,
        city=record.city,
        state=record.state,
        owner_name=record.name,
        owner_flags={
            "crawler_source": record.source,
            "crawled_at": as_of.isoformat(),
            "case_type": record.case_type,
            "link": record.link,
        },
        tags=[record.distress_type],
        notes=f"Auto-crawled {record.distress_type} signal from {record.source} on {record.date}",
        historical_conversion_rate=settings.crawler_historical_conversion_rate,
    )


async def run_crawler(
    module: CrawlerModule,
    session_factory: Optional[sessionmaker] = None,
    pipeline: Optional[RecordPipeline] = None,
) -> CrawlRunResult:
    """
    Crawl one module and ingest what it found.

    A module that raises while crawling is counted as one error; the run is
    still audited. Records are isolated from each other by savepoints, and a
    record that fails for any reason becomes one entry in ``error_messages``.

    Args:
        module: Harvesting module
        session_factory: Session factory (default SessionLocal)
        pipeline: Record pipeline (default settings thresholds, today's date)

    Returns:
        CrawlRunResult
    """
    pipeline = pipeline or RecordPipeline()
    as_of = pipeline.as_of or today_utc()
    started = time.monotonic()
    result = CrawlRunResult(crawler_id=module.id)

    records: List[CrawledRecord] = []
    try:
        records = await module.crawl()
    except Exception as e:
        logger.error("crawler_failed", crawler=module.id, error=str(e), error_type=type(e).__name__)
        result.errors += 1
        result.error_messages.append(f"crawl: {e}")
    result.crawled = len(records)
    logger.info("crawler_records_collected", crawler=module.id, crawled=result.crawled)

    with session_scope(session_factory) as session:
        for index, record in enumerate(records):
            try:
                ingest = crawled_to_ingest(CrawledRecord.model_validate(record), as_of)
                outcome, error = pipeline.try_process(session, ingest)
            except Exception as e:
                logger.error(
                    "crawler_record_failed",
                    crawler=module.id,
                    index=index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcome, error = None, f"record {index}: {type(e).__name__}: {e}"
            if outcome is None:
                result.errors += 1
                result.error_messages.append(error)
                continue

            result.scored += 1
            if outcome.event_deduped:
                result.duplicates += 1
            if outcome.promotion.outcome == PROMOTED:
                result.promoted += 1
            elif outcome.promotion.outcome == UPDATED:
                result.updated += 1

        result.elapsed_ms = int((time.monotonic() - started) * 1000)
        audit.record(
            session,
            CRAWLER_RUN,
            "crawler",
            module.id,
            details={"crawler_name": module.name, **result.to_dict()},
        )

    logger.info("crawler_run_complete", **result.to_dict())
    return result


async def run_all_crawlers(
    modules: Sequence[CrawlerModule],
    session_factory: Optional[sessionmaker] = None,
    pipeline: Optional[RecordPipeline] = None,
) -> List[CrawlRunResult]:
    """Run modules one after another; one module failing never stops the rest."""
    results: List[CrawlRunResult] = []
    for module in modules:
        logger.info("crawler_run_started", crawler=module.id, name=module.name)
        try:
            result = await run_crawler(module, session_factory=session_factory, pipeline=pipeline)
        except Exception as e:
            logger.error("crawler_run_failed", crawler=module.id, error=str(e), error_type=type(e).__name__)
            result = CrawlRunResult(crawler_id=module.id, errors=1, error_messages=[f"run: {e}"])
        results.append(result)
    return results


def main() -> None:
    """Run every harvesting module once."""
    from src.distress_leads.scrapers import default_crawlers
    from src.distress_leads.utils.logger import setup_logging

    setup_logging("crawler")
    results = asyncio.run(run_all_crawlers(default_crawlers()))
    for result in results:
        logger.info("crawler_summary", **result.to_dict())


if __name__ == "__main__":
    main()
