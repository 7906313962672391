"""
Scrapers Package

Harvesting modules for public distress pages (obituaries, court dockets,
utility shut-offs) and clients for the ATTOM and PropertyRadar catalogs.
"""

from .base import BaseCrawler, CrawlerModule, CrawlSource
from .court_docket_scraper import CourtDocketCrawler
from .obituary_scraper import ObituaryCrawler
from .utility_shutoff_scraper import UtilityShutoffCrawler
from .attom_client import AttomClient
from .propertyradar_client import PropertyRadarClient


def default_crawlers():
    """One instance of every harvesting module, in run order."""
    return [ObituaryCrawler(), CourtDocketCrawler(), UtilityShutoffCrawler()]


__all__ = [
    "BaseCrawler",
    "CrawlerModule",
    "CrawlSource",
    "CourtDocketCrawler",
    "ObituaryCrawler",
    "UtilityShutoffCrawler",
    "AttomClient",
    "PropertyRadarClient",
    "default_crawlers",
]
