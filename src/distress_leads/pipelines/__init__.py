"""
Pipelines Package

Record-level transformations shared by every ingestion path.
"""
from src.distress_leads.pipelines.deduplication import distress_fingerprint, is_duplicate_error

__all__ = ["distress_fingerprint", "is_duplicate_error"]
