"""
Obituary Crawler

Reads regional obituary indexes and funeral-home listings, follows the
individual obituary pages and emits ``probate`` records. A death notice
reaches these pages one to two weeks before a probate filing reaches the
recorder.
"""
import re
from typing import List, Optional

from src.distress_leads.models.crawled import CrawledRecord
from src.distress_leads.scrapers.base import BaseCrawler, CrawlSource
from src.distress_leads.scrapers.extraction import (
    Markup,
    extract_address,
    extract_city,
    extract_links,
    make_soup,
    parse_date,
    strip_html,
)
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

OBITUARY_SOURCES = (
    CrawlSource(
        id="spokesman_obits",
        name="Spokesman-Review Obituaries",
        url="https://www.legacy.com/us/obituaries/spokesman/browse",
        county="Spokane",
        state="WA",
    ),
    CrawlSource(
        id="cda_press_obits",
        name="Coeur d'Alene Press Obituaries",
        url="https://www.legacy.com/us/obituaries/cdapress/browse",
        county="Kootenai",
        state="ID",
    ),
    CrawlSource(
        id="hennessey_smith",
        name="Hennessey Valley Funeral Chapel",
        url="https://www.hennesseyvalley.com/obituaries",
        county="Spokane",
        state="WA",
    ),
    CrawlSource(
        id="hazen_jaeger",
        name="Hazen & Jaeger Funeral Home",
        url="https://www.hazenjaeger.com/obituaries",
        county="Spokane",
        state="WA",
    ),
    CrawlSource(
        id="yates_funeral",
        name="Yates Funeral Homes",
        url="https://www.yatesfuneralhomes.com/obituaries",
        county="Kootenai",
        state="ID",
    ),
)

MAX_LINKS_PER_SOURCE = 25

NAME_CLASS_RE = re.compile(r"name", re.IGNORECASE)
OBIT_NAME_CLASS_RE = re.compile(r"obit.*name", re.IGNORECASE)
TITLE_SEPARATOR_RE = re.compile(r"\s+[|–-]\s+|\|")

DEATH_DATE_PATTERNS = (
    re.compile(r"(?:passed|died|passing)\s+(?:away\s+)?(?:on\s+)?([A-Za-z]+\s+\d{1,2},?\s+\d{4})", re.IGNORECASE),
    re.compile(r"([A-Za-z]+\s+\d{1,2},?\s+\d{4})\s*[-–]\s*([A-Za-z]+\s+\d{1,2},?\s+\d{4})"),
    re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"),
)

OBITUARY_SUFFIX_RE = re.compile(r"\s+obituary\b", re.IGNORECASE)


def extract_decedent_name(markup: Markup) -> Optional[str]:
    """Decedent name from a name heading, the page title, or an obituary name element."""
    soup = make_soup(markup)

    candidates = [h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3"], class_=NAME_CLASS_RE)]
    if soup.title is not None:
        candidates.append(TITLE_SEPARATOR_RE.split(soup.title.get_text(" ", strip=True))[0])
    candidates.extend(el.get_text(" ", strip=True) for el in soup.find_all(class_=OBIT_NAME_CLASS_RE))

    for candidate in candidates:
        name = OBITUARY_SUFFIX_RE.sub("", " ".join(candidate.split())).strip()
        if 3 < len(name) < 80:
            return name
    return None


class ObituaryCrawler(BaseCrawler):
    """Daily obituary crawler for Spokane and Kootenai counties."""

    id = "obituary_daily"
    name = "Daily Obituary Crawler (Spokane/Kootenai)"
    sources = OBITUARY_SOURCES

    async def crawl_source(self, source: CrawlSource) -> List[CrawledRecord]:
        index_html = await self.fetch(source.url)
        if index_html is None:
            return []

        links = extract_links(index_html, source.url, ("obituar",), MAX_LINKS_PER_SOURCE)
        logger.info("obituary_links_found", source=source.id, links=len(links))

        records: List[CrawledRecord] = []
        for link in links:
            html = await self.fetch(link)
            if html is None:
                continue

            page = make_soup(html)
            name = extract_decedent_name(page)
            if not name:
                continue

            text = strip_html(page)
            record = self.build_record(
                name=name,
                address=extract_address(text),
                city=extract_city(text),
                state=source.state,
                county=source.county,
                date=parse_date(text, DEATH_DATE_PATTERNS, today=self.run_date()),
                link=link,
                source=f"obituary:{source.id}",
                distress_type="probate",
                raw_data={"funeral_source": source.name, "snippet": text[:500]},
            )
            if record is not None:
                records.append(record)

        return records
