"""
ATTOM Property API Client

Bulk property catalog for Spokane and Kootenai counties: property snapshots,
foreclosure filings and property detail by APN. Used by the daily delta
ingestion to pick up recently modified parcels.
"""
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import requests

from config.settings import settings
from src.distress_leads.exceptions import UpstreamError
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

SOURCE = "attom"

COUNTY_FIPS = {
    "Spokane": "53063",
    "Kootenai": "16055",
}

FIPS_TO_STATE = {
    "53063": "WA",
    "16055": "ID",
}

FORECLOSURE_MAX_PAGES = 2
RECORDS_PER_CALL_ESTIMATE = 25


def fips_to_county(fips: str) -> str:
    for county, code in COUNTY_FIPS.items():
        if code == fips:
            return county
    return f"FIPS-{fips}"


def estimate_cost(api_calls: int, avg_records_per_call: int = RECORDS_PER_CALL_ESTIMATE,
                  cost_per_record: Optional[float] = None) -> float:
    """Estimated spend in dollars for a number of API calls."""
    rate = settings.attom_cost_per_record if cost_per_record is None else cost_per_record
    return round(api_calls * avg_records_per_call * rate, 2)


@dataclass
class DailyDelta:
    """Properties and foreclosures pulled for one county."""
    properties: List[Dict[str, Any]] = field(default_factory=list)
    foreclosures: List[Dict[str, Any]] = field(default_factory=list)
    api_calls: int = 0
    errors: List[str] = field(default_factory=list)


class AttomClient:
    """
    Client for the ATTOM property API.

    Auth is an ``apikey`` header. Pages are fetched sequentially with a short
    pause between calls.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        page_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the ATTOM client.

        Args:
            api_key: Override settings.attom_api_key
            base_url: Override the API base URL (for testing)
            session: Pre-built requests session (for testing)
            page_delay_seconds: Pause between paged calls
            sleep: Sleep function (tests pass a no-op)
        """
        self.api_key = api_key or settings.attom_api_key
        if not self.api_key:
            raise UpstreamError(SOURCE, "ATTOM_API_KEY not configured")
        self.base_url = (base_url or settings.attom_base_url).rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"apikey": self.api_key, "Accept": "application/json"})
        self.timeout = timeout
        self.page_delay_seconds = page_delay_seconds
        self.sleep = sleep
        logger.info("attom_client_initialized", base_url=self.base_url)

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("attom_request_failed", endpoint=endpoint, error=str(e), error_type=type(e).__name__)
            raise UpstreamError(SOURCE, f"ATTOM {endpoint} request failed: {e}") from e

        if not response.ok:
            logger.warning("attom_request_rejected", endpoint=endpoint, status_code=response.status_code)
            raise UpstreamError(
                SOURCE,
                f"ATTOM {endpoint} returned {response.status_code}: {response.text[:300]}",
                status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(SOURCE, f"ATTOM {endpoint} returned non-JSON body") from e

    def get_property_detail(self, apn: str, fips: str) -> Optional[Dict[str, Any]]:
        """Property detail by APN and county FIPS; None when ATTOM has no match."""
        try:
            data = self._get("/property/detail", {"apn": apn, "fips": fips})
        except UpstreamError as e:
            if e.status == 404:
                return None
            raise
        properties = data.get("property") or []
        return properties[0] if properties else None

    def get_property_snapshot(self, fips: str, page: int = 1, pagesize: int = 50) -> List[Dict[str, Any]]:
        data = self._get("/property/snapshot", {"geoIdV4": f"CO{fips}", "page": page, "pagesize": pagesize})
        return data.get("property") or []

    def get_foreclosures(self, fips: str, page: int = 1, pagesize: int = 50,
                         start_date: Optional[str] = None, end_date: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"geoIdV4": f"CO{fips}", "page": page, "pagesize": pagesize}
        if start_date:
            params["startFCRecDate"] = start_date
        if end_date:
            params["endFCRecDate"] = end_date
        data = self._get("/property/foreclosure", params)
        return data.get("property") or []

    def pull_daily_delta(
        self,
        fips: str,
        since: date,
        until: date,
        pagesize: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> DailyDelta:
        """
        Properties modified between ``since`` and ``until`` plus foreclosures
        recorded in the same window.

        A failing page ends that listing; what was already pulled is kept and
        the error is reported on the result.
        """
        pagesize = pagesize or settings.attom_page_size
        max_pages = max_pages or settings.attom_max_pages_per_county
        since_iso, until_iso = since.isoformat(), until.isoformat()
        delta = DailyDelta()

        for page in range(1, max_pages + 1):
            try:
                batch = self.get_property_snapshot(fips, page=page, pagesize=pagesize)
            except UpstreamError as e:
                delta.errors.append(f"property snapshot page {page}: {e.message}")
                break
            delta.api_calls += 1
            if not batch:
                break

            for prop in batch:
                vintage = prop.get("vintage") or {}
                modified = (vintage.get("lastModified") or vintage.get("pubDate") or "")[:10]
                if not modified or since_iso <= modified <= until_iso:
                    delta.properties.append(prop)

            if len(batch) < pagesize:
                break
            self.sleep(self.page_delay_seconds)

        for page in range(1, min(max_pages, FORECLOSURE_MAX_PAGES) + 1):
            try:
                batch = self.get_foreclosures(
                    fips, page=page, pagesize=pagesize, start_date=since_iso, end_date=until_iso
                )
            except UpstreamError as e:
                delta.errors.append(f"foreclosure page {page}: {e.message}")
                break
            delta.api_calls += 1
            if not batch:
                break
            delta.foreclosures.extend(batch)
            if len(batch) < pagesize:
                break
            self.sleep(self.page_delay_seconds)

        logger.info(
            "attom_delta_pulled",
            fips=fips,
            properties=len(delta.properties),
            foreclosures=len(delta.foreclosures),
            api_calls=delta.api_calls,
            errors=len(delta.errors),
        )
        return delta
