"""
Court Docket Crawler

Divorce/dissolution and bankruptcy filings from county court indexes. Rows
of the index table are parsed first, then individual case pages linked from
it. Filings rarely carry a property address; identity falls back to a
synthetic APN until a catalog enrichment resolves the parcel.
"""
import re
from typing import List, Optional, Set, Tuple

from src.distress_leads.models.crawled import CrawledRecord
from src.distress_leads.scrapers.base import BaseCrawler, CaseType, CrawlSource
from src.distress_leads.scrapers.extraction import (
    Markup,
    extract_address,
    extract_city,
    extract_links,
    first_match,
    make_soup,
    parse_date,
    strip_html,
)
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

DIVORCE_LABEL = "Divorce/Dissolution"
BANKRUPTCY_LABEL = "Bankruptcy"

COURT_SOURCES = (
    CrawlSource(
        id="spokane_superior",
        name="Spokane County Superior Court",
        url="https://dw.courts.wa.gov/index.cfm?fa=home.casesearch&terms=accept&county=32",
        county="Spokane",
        state="WA",
        case_types=(
            CaseType(re.compile(r"\b(?:dissolution|divorce|domestic|family law)\b", re.IGNORECASE),
                     "divorce", DIVORCE_LABEL),
            CaseType(re.compile(r"\b(?:bankruptcy|chapter\s*(?:7|11|13)|insolvency)\b", re.IGNORECASE),
                     "bankruptcy", BANKRUPTCY_LABEL),
        ),
    ),
    CrawlSource(
        id="kootenai_district",
        name="Kootenai County District Court",
        url="https://www.idcourts.us/repository/caseSearch.do?county=Kootenai",
        county="Kootenai",
        state="ID",
        case_types=(
            CaseType(re.compile(r"\b(?:divorce|dissolution|domestic relations)\b", re.IGNORECASE),
                     "divorce", DIVORCE_LABEL),
            CaseType(re.compile(r"\b(?:bankruptcy|chapter\s*(?:7|11|13))\b", re.IGNORECASE),
                     "bankruptcy", BANKRUPTCY_LABEL),
        ),
    ),
)

MAX_CASE_LINKS = 40

SEPARATOR_RUN_RE = re.compile(r"\s*(?:\|\s*)+")
VERSUS_RE = re.compile(r"\s+(?:vs?\.?|v\.)\s+.*$", re.IGNORECASE)

CASE_NUMBER_PATTERNS = (
    re.compile(r"\b(\d{2}-\d-\d{5}-\d{1,2})\b"),
    re.compile(r"\b(CV-?\d{2,4}-\d{3,6})\b", re.IGNORECASE),
    re.compile(r"\b([A-Z]{2}\d{2}-\d{4,6})\b"),
)

PARTY_LABEL_RE = re.compile(r"(?:Petitioner|Plaintiff|Debtor|In Re)\s*[:–—-]?\s*(?:\|\s*)?([A-Z][a-zA-Z\s,.'()-]{3,60})")
PARTY_CLASS_RE = re.compile(r"party", re.IGNORECASE)
PARTY_VERSUS_RE = re.compile(r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,3})\s+(?:vs?\.?|v\.|VS\.)")

FILING_DATE_PATTERNS = (
    re.compile(r"(?:Filed|Filing Date|Date Filed)[\s:|–—]*(\d{1,2}/\d{1,2}/\d{2,4})", re.IGNORECASE),
    re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"),
    re.compile(r"(\d{4}-\d{2}-\d{2})"),
)


def classify_case(text: str, case_types) -> Optional[CaseType]:
    """First case type whose pattern matches, or None."""
    for case_type in case_types:
        if case_type.pattern.search(text):
            return case_type
    return None


def extract_case_number(text: str) -> Optional[str]:
    return first_match(CASE_NUMBER_PATTERNS, text)


def segment_text(markup: Optional[Markup]) -> str:
    """Plain text with " | " at every tag boundary, so captures stop at cell edges."""
    text = SEPARATOR_RUN_RE.sub(" | ", make_soup(markup).get_text("|"))
    return " ".join(text.split()).strip(" |")


def party_from_markup(markup: Markup) -> Optional[str]:
    """Text of the first element whose CSS class mentions a party."""
    element = make_soup(markup).find(class_=PARTY_CLASS_RE)
    if element is None:
        return None
    text = element.get_text(" ", strip=True)
    return text if 3 <= len(text) <= 60 else None


def extract_party_name(text: str, markup: Optional[Markup] = None) -> Optional[str]:
    """
    Petitioner, plaintiff or debtor name.

    Args:
        text: Segmented page or row text
        markup: Page or row markup, for pages that tag the party in a CSS class
    """
    match = PARTY_LABEL_RE.search(text)
    if match is not None:
        raw = match.group(1)
    else:
        raw = party_from_markup(markup) if markup is not None else None
        if raw is None:
            match = PARTY_VERSUS_RE.search(text)
            raw = match.group(1) if match else None
    if raw is None:
        return None
    name = VERSUS_RE.sub("", " ".join(raw.split())).strip(" ,.")
    return name or None


class CourtDocketCrawler(BaseCrawler):
    """Daily divorce and bankruptcy docket crawler."""

    id = "court_docket_daily"
    name = "Daily Court Docket Crawler (Spokane/Kootenai Divorce & Bankruptcy)"
    sources = COURT_SOURCES

    async def crawl_source(self, source: CrawlSource) -> List[CrawledRecord]:
        index_html = await self.fetch(source.url)
        if index_html is None:
            return []

        index = make_soup(index_html)
        records = self.parse_index_table(index, source)
        seen: Set[Tuple[str, str, str]] = {(r.name, r.county, r.distress_type) for r in records}

        case_links = extract_links(index, source.url, ("case", "docket", "filing"), MAX_CASE_LINKS)
        logger.info("court_case_links_found", source=source.id, links=len(case_links), index_rows=len(records))

        for link in case_links:
            html = await self.fetch(link)
            if html is None:
                continue

            page = make_soup(html)
            text = segment_text(page)
            case_type = classify_case(text, source.case_types)
            if case_type is None:
                continue
            name = extract_party_name(text, page)
            if not name:
                continue

            key = (name, source.county, case_type.distress_type)
            if key in seen:
                continue
            seen.add(key)

            record = self.build_record(
                name=name,
                address=extract_address(text),
                city=extract_city(text),
                state=source.state,
                county=source.county,
                date=parse_date(text, FILING_DATE_PATTERNS, today=self.run_date()),
                link=link,
                source=f"court:{source.id}",
                distress_type=case_type.distress_type,
                case_type=case_type.label,
                raw_data={
                    "case_number": extract_case_number(text),
                    "court": source.name,
                    "snippet": strip_html(page)[:500],
                },
            )
            if record is not None:
                records.append(record)

        return records

    def parse_index_table(self, markup: Markup, source: CrawlSource) -> List[CrawledRecord]:
        """Records from the rows of the court index table, one per (name, type)."""
        records: List[CrawledRecord] = []
        seen: Set[Tuple[str, str]] = set()

        for row in make_soup(markup).find_all("tr"):
            text = segment_text(row)
            case_type = classify_case(text, source.case_types)
            if case_type is None:
                continue
            name = extract_party_name(text, row)
            if not name or (name, case_type.distress_type) in seen:
                continue
            seen.add((name, case_type.distress_type))

            record = self.build_record(
                name=name,
                address=extract_address(text),
                city=extract_city(text),
                state=source.state,
                county=source.county,
                date=parse_date(text, FILING_DATE_PATTERNS, today=self.run_date()),
                link=source.url,
                source=f"court:{source.id}",
                distress_type=case_type.distress_type,
                case_type=case_type.label,
                raw_data={
                    "case_number": extract_case_number(text),
                    "court": source.name,
                    "parsed_from": "index_table",
                },
            )
            if record is not None:
                records.append(record)

        return records
