"""
Distress Leads - Core Package

Signal ingestion, identity resolution, scoring and lead promotion for
distressed real-estate prospects.
"""

__version__ = "0.1.0"
