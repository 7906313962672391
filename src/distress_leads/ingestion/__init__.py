"""
Ingestion Package

Every source lands in the shared record pipeline: crawler runs, the ATTOM
daily delta and the PropertyRadar elite seed.
"""
from src.distress_leads.ingestion.record_pipeline import (
    IngestRecord,
    RecordOutcome,
    RecordPipeline,
    SignalObservation,
)

__all__ = ["IngestRecord", "RecordOutcome", "RecordPipeline", "SignalObservation"]
