"""
Utility Shut-Off Crawler

Code-violation listings, utility liens, water shut-off notices and Idaho DEQ
notices for Spokane and Kootenai counties. Every block that carries a street
address becomes a ``water_shutoff`` record.
"""
import re
from typing import List, Optional

from src.distress_leads.models.crawled import CrawledRecord
from src.distress_leads.scrapers.base import BaseCrawler, CrawlSource
from src.distress_leads.scrapers.extraction import (
    Markup,
    extract_address,
    extract_amount,
    extract_apn,
    extract_city,
    extract_links,
    make_soup,
    parse_date,
    strip_html,
)
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

UTILITY_SOURCES = (
    CrawlSource(
        id="spokane_code_violations",
        name="City of Spokane Code Violations",
        url="https://my.spokanecity.org/opendata/code-enforcement/",
        county="Spokane",
        state="WA",
        data_type="code_violations",
    ),
    CrawlSource(
        id="spokane_utility_liens",
        name="Spokane County Utility Liens",
        url="https://www.spokanecounty.org/681/Liens",
        county="Spokane",
        state="WA",
        data_type="utility_liens",
    ),
    CrawlSource(
        id="spokane_shutoff_notices",
        name="City of Spokane Utility Shut-Off Notices",
        url="https://my.spokanecity.org/utilities/account/shutoff-notices/",
        county="Spokane",
        state="WA",
        data_type="shutoff_notices",
    ),
    CrawlSource(
        id="cda_code_violations",
        name="City of Coeur d'Alene Code Violations",
        url="https://www.cdaid.org/code-enforcement",
        county="Kootenai",
        state="ID",
        data_type="code_violations",
    ),
    CrawlSource(
        id="kootenai_utility_liens",
        name="Kootenai County Public Records - Utility Liens",
        url="https://www.kcgov.us/223/Recorded-Documents",
        county="Kootenai",
        state="ID",
        data_type="utility_liens",
    ),
    CrawlSource(
        id="idaho_deq_notices",
        name="Idaho DEQ Public Water Notices",
        url="https://www2.deq.idaho.gov/water/compliance/violations.cfm",
        county="Kootenai",
        state="ID",
        data_type="deq_notices",
    ),
)

DEFAULT_CITY_BY_COUNTY = {
    "Spokane": "Spokane",
    "Kootenai": "Coeur d'Alene",
}

MAX_BLOCKS = 50
MAX_DETAIL_LINKS = 30
MIN_BLOCK_LENGTH = 20

BLOCK_CLASS_RE = re.compile(r"violation|lien|notice|record|result|item", re.IGNORECASE)

# Table rows first, then list items, then classed divs
BLOCK_SELECTORS = (
    ("tr", {}),
    ("li", {}),
    ("div", {"class_": BLOCK_CLASS_RE}),
)

OWNER_PATTERNS = (
    re.compile(r"(?:owner|property\s+owner|taxpayer|homeowner)[:\s]+([A-Z][A-Za-z\s,.'-]{3,60})", re.IGNORECASE),
    re.compile(r"(?:name|resident)[:\s]+([A-Z][A-Za-z\s,.'-]{3,60})", re.IGNORECASE),
    re.compile(r"(?:lien\s+against|notice\s+to)[:\s]+([A-Z][A-Za-z\s,.'-]{3,60})", re.IGNORECASE),
)

DETAIL_LINK_KEYWORDS = ("violation", "lien", "notice", "case", "detail", "shutoff")


def extract_record_blocks(markup: Markup) -> List[str]:
    """
    Text blocks that look like one listing each.

    Table rows are tried first, then list items, then classed divs; the first
    kind that yields any block with a street address wins.
    """
    soup = make_soup(markup)
    for name, attrs in BLOCK_SELECTORS:
        blocks = [
            text
            for text in (strip_html(element) for element in soup.find_all(name, **attrs))
            if len(text) > MIN_BLOCK_LENGTH and extract_address(text)
        ]
        if blocks:
            return blocks[:MAX_BLOCKS]
    return []


def extract_owner_name(text: str) -> Optional[str]:
    for pattern in OWNER_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        name = re.sub(r"[,.]$", "", match.group(1).strip())
        if 3 < len(name) < 80:
            return name
    return None


class UtilityShutoffCrawler(BaseCrawler):
    """Utility shut-off and lien crawler (Spokane/Kootenai)."""

    id = "utility_shutoff"
    name = "Utility Shut-Off Crawler (Spokane/Kootenai)"
    sources = UTILITY_SOURCES

    async def crawl_source(self, source: CrawlSource) -> List[CrawledRecord]:
        index_html = await self.fetch(source.url)
        if index_html is None:
            return []

        index = make_soup(index_html)
        records: List[CrawledRecord] = []
        blocks = extract_record_blocks(index)
        logger.info("utility_blocks_found", source=source.id, blocks=len(blocks))

        for block in blocks:
            record = self._record_from_text(block, source, source.url)
            if record is not None:
                records.append(record)

        detail_links = extract_links(index, source.url, DETAIL_LINK_KEYWORDS, MAX_DETAIL_LINKS)
        for link in detail_links:
            html = await self.fetch(link)
            if html is None:
                continue
            text = strip_html(html)
            address = extract_address(text)
            if not address or any(r.address == address and r.county == source.county for r in records):
                continue
            record = self._record_from_text(text, source, link)
            if record is not None:
                records.append(record)

        return records

    def _record_from_text(self, text: str, source: CrawlSource, link: str) -> Optional[CrawledRecord]:
        address = extract_address(text)
        if not address:
            return None
        apn = extract_apn(text)
        raw_data = {
            "data_type": source.data_type,
            "source_name": source.name,
            "amount_owed": extract_amount(text),
            "apn_from_source": apn,
            "raw_block": text[:500],
        }
        if apn:
            # resolved with the compact APN style
            raw_data["apn"] = apn

        return self.build_record(
            name=extract_owner_name(text) or f"Owner at {address}",
            address=address,
            city=extract_city(text) or DEFAULT_CITY_BY_COUNTY.get(source.county),
            state=source.state,
            county=source.county,
            date=parse_date(text, today=self.run_date()),
            link=link,
            source=f"utility_shutoff:{source.id}",
            distress_type="water_shutoff",
            raw_data=raw_data,
        )
