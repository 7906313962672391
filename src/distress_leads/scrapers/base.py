"""
Crawler Base

Shared plumbing for the harvesting modules: an httpx async client with a
bounded timeout, failure-tolerant page fetches and per-source isolation.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Optional, Protocol, Sequence, Tuple

import httpx
from pydantic import ValidationError

from config.settings import settings
from src.distress_leads.models.crawled import CrawledRecord
from src.distress_leads.utils.coercion import today_utc
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)


class CrawlerModule(Protocol):
    id: str
    name: str

    async def crawl(self) -> List[CrawledRecord]:
        raise NotImplementedError


@dataclass(frozen=True)
class CaseType:
    """Court case classification rule."""
    pattern: Any
    distress_type: str
    label: str


@dataclass(frozen=True)
class CrawlSource:
    """
    One public page a crawler reads.

    Attributes:
        id: Stable source id, used in the record source string
        url: Index page URL
        data_type: Kind of listing (utility sources only)
        case_types: Classification rules (court sources only)
    """
    id: str
    name: str
    url: str
    county: str
    state: str
    data_type: Optional[str] = None
    case_types: Tuple[CaseType, ...] = field(default_factory=tuple)


class BaseCrawler:
    """
    Base class for harvesting modules.

    Subclasses set ``id``, ``name`` and ``sources`` and implement
    ``crawl_source``. A source that raises is logged and skipped; the
    remaining sources still run.

    Args:
        sources: Override the default source list
        client: Pre-built httpx.AsyncClient (tests inject a MockTransport client)
        timeout: Request timeout in seconds
        today: Fallback event date when a page carries none
    """

    id: str = ""
    name: str = ""
    sources: Sequence[CrawlSource] = ()

    def __init__(
        self,
        sources: Optional[Sequence[CrawlSource]] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        today: Optional[date] = None,
    ):
        if sources is not None:
            self.sources = list(sources)
        self._client = client
        self.timeout = timeout or settings.crawler_timeout_seconds
        self.today = today

    def run_date(self) -> date:
        return self.today or today_utc()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={
                "User-Agent": settings.crawler_user_agent,
                "Accept": "text/html,application/xhtml+xml,application/json",
            },
        )

    async def fetch(self, url: str) -> Optional[str]:
        """
        GET a page.

        Returns:
            Response body, or None on non-2xx status or transport error
        """
        if self._client is None:
            raise RuntimeError("fetch() requires an open client; call crawl()")
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            logger.warning(
                "crawler_fetch_failed",
                crawler=self.id,
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if not response.is_success:
            logger.warning("crawler_fetch_failed", crawler=self.id, url=url, status_code=response.status_code)
            return None
        return response.text

    async def crawl(self) -> List[CrawledRecord]:
        """Crawl every source, isolating failures per source."""
        owns_client = self._client is None
        if owns_client:
            self._client = self._build_client()

        records: List[CrawledRecord] = []
        try:
            for source in self.sources:
                logger.info("crawler_source_fetching", crawler=self.id, source=source.id, url=source.url)
                try:
                    found = await self.crawl_source(source)
                except Exception as e:
                    logger.error(
                        "crawler_source_failed",
                        crawler=self.id,
                        source=source.id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
                logger.info("crawler_source_complete", crawler=self.id, source=source.id, records=len(found))
                records.extend(found)
        finally:
            if owns_client:
                await self._client.aclose()
                self._client = None

        logger.info("crawler_complete", crawler=self.id, total_records=len(records))
        return records

    async def crawl_source(self, source: CrawlSource) -> List[CrawledRecord]:
        raise NotImplementedError

    def build_record(self, **fields: Any) -> Optional[CrawledRecord]:
        """Validate one extracted record; invalid ones are logged and dropped."""
        try:
            return CrawledRecord(**fields)
        except ValidationError as e:
            logger.warning("crawled_record_invalid", crawler=self.id, error=str(e), name=fields.get("name"))
            return None
