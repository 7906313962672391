"""
Database Package

Database models and data persistence layer. Engine and session factories
live in ``db.session`` and are imported from there explicitly.
"""
from src.distress_leads.db.base import Base
from src.distress_leads.db.models import (
    ComplianceEntry,
    DataIngestionRun,
    DistressEvent,
    EventLog,
    Lead,
    PredictionRecord,
    Property,
    ScoringRecord,
    ScoringWeightSet,
)
from src.distress_leads.db.repository import (
    BaseRepository,
    ComplianceRepository,
    DataIngestionRunRepository,
    DistressEventRepository,
    EventLogRepository,
    LeadRepository,
    PredictionRecordRepository,
    PropertyRepository,
    ScoringRecordRepository,
    ScoringWeightSetRepository,
)

__all__ = [
    # Base
    "Base",
    # Models
    "Property",
    "DistressEvent",
    "ScoringRecord",
    "PredictionRecord",
    "Lead",
    "EventLog",
    "ComplianceEntry",
    "ScoringWeightSet",
    "DataIngestionRun",
    # Repositories
    "BaseRepository",
    "PropertyRepository",
    "DistressEventRepository",
    "ScoringRecordRepository",
    "PredictionRecordRepository",
    "LeadRepository",
    "EventLogRepository",
    "ComplianceRepository",
    "ScoringWeightSetRepository",
    "DataIngestionRunRepository",
]
