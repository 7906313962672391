"""
HTML Extraction Helpers

Pages are parsed with BeautifulSoup; regex heuristics then pull addresses,
parcels, amounts and dates out of the visible text. Public county pages have
no common markup, so every helper returns None (or a fallback) instead of
raising when nothing matches.
"""
import re
from datetime import date, datetime
from typing import Iterable, List, Optional, Pattern, Sequence, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

STREET_SUFFIXES = (
    "Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Court|Ct|"
    "Way|Place|Pl|Circle|Cir|Terrace|Ter|Loop|Highway|Hwy"
)

ADDRESS_RE = re.compile(
    rf"\b(\d{{1,6}}\s+[A-Z][A-Za-z0-9\s.#]*?\s(?:{STREET_SUFFIXES})\b\.?)",
    re.IGNORECASE,
)

# Longer names first so "Spokane Valley" wins over "Spokane"
CITIES = (
    "Spokane Valley", "Spokane", "Liberty Lake", "Cheney", "Airway Heights", "Medical Lake",
    "Coeur d'Alene", "Post Falls", "Hayden", "Rathdrum", "Sandpoint", "Dalton Gardens",
)

CITY_RE = re.compile(r"\b(" + "|".join(re.escape(c) for c in CITIES) + r")\b", re.IGNORECASE)

APN_RE = re.compile(r"\b(\d{4,5}[\s.-]\d{3,5}[\s.-]\d{3,5}(?:[\s.-]\d{1,4})?)\b")

AMOUNT_RE = re.compile(r"\$[\d,]+(?:\.\d{2})?")

GENERIC_DATE_PATTERNS = (
    re.compile(r"(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})"),
    re.compile(r"([A-Za-z]+\s+\d{1,2},?\s+\d{4})"),
    re.compile(r"(\d{4}-\d{2}-\d{2})"),
)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%m-%d-%y",
    "%B %d %Y",
    "%b %d %Y",
)

WHITESPACE_RE = re.compile(r"\s+")

Markup = Union[str, Tag]


def make_soup(markup: Optional[Markup]) -> Tag:
    """Parsed document for a page, or the element itself when already parsed."""
    if isinstance(markup, Tag):
        return markup
    soup = BeautifulSoup(markup or "", "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup


def strip_html(markup: Optional[Markup]) -> str:
    """Visible text with entities decoded and whitespace collapsed."""
    return WHITESPACE_RE.sub(" ", make_soup(markup).get_text(" ")).strip()


def extract_links(markup: Optional[Markup], base_url: str, keywords: Iterable[str], limit: int) -> List[str]:
    """
    Absolute URLs of anchors whose href contains any keyword.

    Args:
        markup: Page HTML or parsed document
        base_url: URL the page was fetched from (relative hrefs resolve against it)
        keywords: Substrings to look for in the href, case-insensitive
        limit: Maximum number of links returned

    Returns:
        De-duplicated links in page order
    """
    wanted = [k.lower() for k in keywords]

    links: List[str] = []
    for anchor in make_soup(markup).find_all("a", href=True):
        href = anchor["href"].strip()
        if not any(k in href.lower() for k in wanted):
            continue
        try:
            url = urljoin(base_url, href)
        except ValueError:
            continue
        if url not in links:
            links.append(url)
        if len(links) >= limit:
            break
    return links


def extract_address(text: str) -> Optional[str]:
    match = ADDRESS_RE.search(text or "")
    return WHITESPACE_RE.sub(" ", match.group(1)).strip() if match else None


def extract_city(text: str) -> Optional[str]:
    match = CITY_RE.search(text or "")
    if not match:
        return None
    found = match.group(1).lower()
    return next((city for city in CITIES if city.lower() == found), match.group(1))


def extract_apn(text: str) -> Optional[str]:
    match = APN_RE.search(text or "")
    return re.sub(r"\s", "", match.group(1)) if match else None


def extract_amount(text: str) -> Optional[str]:
    match = AMOUNT_RE.search(text or "")
    return match.group(0) if match else None


def to_iso_date(raw: str) -> Optional[str]:
    """Parse one date string in any of the formats seen on county pages."""
    cleaned = WHITESPACE_RE.sub(" ", raw.replace(",", " ")).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_date(text: str, patterns: Sequence[Pattern] = GENERIC_DATE_PATTERNS,
               today: Optional[date] = None) -> str:
    """
    First parseable date matched by ``patterns``, as YYYY-MM-DD.

    For patterns with several groups the last group is used (the end of a
    "born - died" range). Falls back to ``today`` when nothing parses.
    """
    for pattern in patterns:
        match = pattern.search(text or "")
        if not match:
            continue
        groups = [g for g in match.groups() if g]
        if not groups:
            continue
        parsed = to_iso_date(groups[-1])
        if parsed:
            return parsed
    return (today or date.today()).isoformat()


def first_match(patterns: Sequence[Pattern], text: str) -> Optional[str]:
    """First group of the first pattern that matches, whitespace collapsed."""
    for pattern in patterns:
        match = pattern.search(text or "")
        if match:
            return WHITESPACE_RE.sub(" ", match.group(1)).strip()
    return None
