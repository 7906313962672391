"""
PropertyRadar Client

Targeted property search: absentee owners with at least 50% equity in the
requested counties. Contact data is never purchased here.
"""
from typing import Any, Dict, List, Optional, Sequence

import requests

from config.settings import settings
from src.distress_leads.exceptions import UpstreamError
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

SOURCE = "propertyradar"

COUNTY_STATE = {
    "spokane": "WA",
    "kootenai": "ID",
    "bonner": "ID",
    "latah": "ID",
    "whitman": "WA",
    "lincoln": "WA",
    "stevens": "WA",
}

RESULT_FIELDS = (
    "RadarID", "APN", "Address", "FullAddress", "City", "State", "ZipFive",
    "County", "Owner", "Taxpayer", "PType", "SqFt", "Beds", "Baths",
    "YearBuilt", "LotSize", "AVM", "AvailableEquity", "EquityPercent",
    "TotalLoanBalance", "LastTransferValue", "LastTransferRecDate",
    "isDeceasedProperty", "isPreforeclosure", "inForeclosure",
    "inTaxDelinquency", "inDivorce", "inBankruptcyProperty",
    "isSiteVacant", "isMailVacant", "isNotSameMailingOrExempt",
    "isFreeAndClear", "isHighEquity", "isCashBuyer",
    "PropertyHasOpenLiens", "PropertyHasOpenPersonLiens",
    "ForeclosureStage", "ForeclosureRecDate", "DefaultAmount",
    "DelinquentYear", "DelinquentAmount",
)


def build_criteria(counties: Sequence[str]) -> List[Dict[str, Any]]:
    """Search criteria: counties (and their states), absentee, equity 50-100%."""
    states = sorted({COUNTY_STATE.get(c.lower(), "WA") for c in counties})
    return [
        {"name": "State", "value": states},
        {"name": "County", "value": list(counties)},
        {"name": "isNotSameMailingOrExempt", "value": ["1"]},
        {"name": "EquityPercent", "value": ["50", "100"]},
    ]


class PropertyRadarClient:
    """
    Client for the PropertyRadar properties endpoint.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.api_key = api_key or settings.propertyradar_api_key
        if not self.api_key:
            raise UpstreamError(SOURCE, "PROPERTYRADAR_API_KEY not configured")
        self.base_url = base_url or settings.propertyradar_base_url
        self.session = session or requests.Session()
        self.timeout = timeout
        logger.info("propertyradar_client_initialized", base_url=self.base_url)

    def search(self, counties: Sequence[str], limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Purchase up to ``limit`` property records matching the seed criteria.

        Returns:
            Dict with ``results`` (list of raw records) and ``total_cost``

        Raises:
            UpstreamError: Network failure, non-2xx status or non-JSON body
        """
        limit = limit or settings.propertyradar_max_pull
        params = {"Purchase": 1, "Limit": limit, "Fields": ",".join(RESULT_FIELDS)}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        logger.info("propertyradar_search", counties=list(counties), limit=limit)
        try:
            response = self.session.post(
                self.base_url,
                params=params,
                json={"Criteria": build_criteria(counties)},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("propertyradar_request_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamError(SOURCE, f"PropertyRadar request failed: {e}") from e

        if not response.ok:
            logger.warning("propertyradar_request_rejected", status_code=response.status_code)
            raise UpstreamError(
                SOURCE,
                f"PropertyRadar HTTP {response.status_code}: {response.text[:500]}",
                status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(SOURCE, "PropertyRadar returned non-JSON response") from e

        results = data.get("results") or []
        logger.info("propertyradar_results", count=len(results), total_cost=data.get("totalCost"))
        return {"results": results, "total_cost": data.get("totalCost")}
