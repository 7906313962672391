"""
SQLAlchemy ORM Models

Properties are keyed on the golden identity (apn, county). Distress events,
scoring records, predictions and the event log are append-only; leads carry
an optimistic concurrency counter (lock_version).
"""
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, Float, ForeignKey, Index, Integer,
    String, Text, UniqueConstraint, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.distress_leads.db.base import Base, CreatedAtMixin, JSONType, TimestampMixin

ACTIVE_LEAD_FILTER = "status IN ('prospect', 'lead', 'negotiation')"
COMPLIANCE_LIST_TYPES = ("dnc", "litigant", "opt_out")


class Property(Base, TimestampMixin):
    """
    Canonical property.

    One row per golden identity (apn, county). Never deleted; every source
    upserts into it.
    """
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    apn: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Normalized assessor parcel number (or CRAWL- synthetic key)"
    )
    county: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Normalized county name"
    )
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    owner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    owner_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_flags: Mapped[dict] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
        comment="Owner situation flags and raw vendor payloads"
    )

    estimated_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    equity_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    property_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bathrooms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sqft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lot_size: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    distress_events: Mapped[list["DistressEvent"]] = relationship(
        "DistressEvent",
        back_populates="property",
        order_by="DistressEvent.id"
    )
    leads: Mapped[list["Lead"]] = relationship("Lead", back_populates="property")

    __table_args__ = (
        UniqueConstraint("apn", "county", name="uq_properties_apn_county"),
        Index("idx_properties_county", "county"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, apn={self.apn}, county={self.county})>"


class DistressEvent(Base, CreatedAtMixin):
    """Append-only distress observation, deduplicated by fingerprint."""
    __tablename__ = "distress_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("properties.id", ondelete="RESTRICT"),
        nullable=False
    )
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Distress type: probate, pre_foreclosure, tax_lien, ..."
    )
    source: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Source identifier, e.g. obituary:spokesman_obits"
    )
    severity: Mapped[float] = mapped_column(Float, nullable=False, default=5)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    event_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="Date the distress occurred (filing, death, notice), when known"
    )
    fingerprint: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 of apn:county:event_type:source"
    )
    raw_data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    property: Mapped["Property"] = relationship("Property", back_populates="distress_events")

    __table_args__ = (
        UniqueConstraint("fingerprint", name="uq_distress_events_fingerprint"),
        CheckConstraint("severity >= 0 AND severity <= 10", name="ck_distress_events_severity"),
        Index("idx_distress_events_property", "property_id"),
    )

    def __repr__(self) -> str:
        return f"<DistressEvent(id={self.id}, type={self.event_type}, property_id={self.property_id})>"


class ScoringRecord(Base, CreatedAtMixin):
    """
    Append-only deterministic score. The current score is the latest row by
    (created_at, id).
    """
    __tablename__ = "scoring_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False)
    model_version: Mapped[str] = mapped_column(String(32), nullable=False)
    composite_score: Mapped[int] = mapped_column(Integer, nullable=False)
    motivation_score: Mapped[float] = mapped_column(Float, nullable=False)
    deal_score: Mapped[float] = mapped_column(Float, nullable=False)
    severity_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    recency_decay: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    stacking_bonus: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    owner_factor_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    equity_factor_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    ai_boost: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    blended_score: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Heat score after the deterministic/predictive blend"
    )
    factors: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    __table_args__ = (
        CheckConstraint("composite_score >= 0 AND composite_score <= 100", name="ck_scoring_records_composite"),
        Index("idx_scoring_records_property_created", "property_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ScoringRecord(property_id={self.property_id}, composite={self.composite_score})>"


class PredictionRecord(Base, CreatedAtMixin):
    """Append-only predictive score with the weight snapshot that produced it."""
    __tablename__ = "scoring_predictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False)
    model_version: Mapped[str] = mapped_column(String(32), nullable=False)
    predictive_score: Mapped[int] = mapped_column(Integer, nullable=False)
    days_until_distress: Mapped[int] = mapped_column(Integer, nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_age_inference: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    equity_burn_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    absentee_duration_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tax_delinquency_trend: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    life_event_probability: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    features: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    factors: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    weights: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    __table_args__ = (
        Index("idx_scoring_predictions_property_created", "property_id", "created_at"),
    )


class Lead(Base, TimestampMixin):
    """
    Workflow lead.

    Status changes go through the transition table and a compare-and-set
    on lock_version. At most one active lead per property.
    """
    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="prospect")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tags: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    lock_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Optimistic concurrency counter, incremented on every write"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    promoted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ghost_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    property: Mapped["Property"] = relationship("Property", back_populates="leads")

    __table_args__ = (
        CheckConstraint(
            "status IN ('prospect', 'lead', 'negotiation', 'disposition', 'nurture', 'dead', 'closed')",
            name="ck_leads_status"
        ),
        Index(
            "uq_leads_active_property",
            "property_id",
            unique=True,
            postgresql_where=text(ACTIVE_LEAD_FILTER),
            sqlite_where=text(ACTIVE_LEAD_FILTER),
        ),
        Index("idx_leads_status_priority", "status", "priority"),
    )

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, status={self.status}, v={self.lock_version})>"


class EventLog(Base, CreatedAtMixin):
    """Append-only audit trail."""
    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    details: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    __table_args__ = (
        Index("idx_event_log_action", "action"),
        Index("idx_event_log_entity", "entity_type", "entity_id"),
    )


class ComplianceEntry(Base, CreatedAtMixin):
    """Phone number on a do-not-contact list."""
    __tablename__ = "compliance_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone: Mapped[str] = mapped_column(String(10), nullable=False, comment="Last 10 digits")
    list_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("phone", "list_type", name="uq_compliance_phone_list"),
        CheckConstraint("list_type IN ('dnc', 'litigant', 'opt_out')", name="ck_compliance_list_type"),
    )


class ScoringWeightSet(Base, CreatedAtMixin):
    """Calibrated predictive weight schema. Only validated schemas are stored."""
    __tablename__ = "scoring_weight_sets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_version: Mapped[str] = mapped_column(String(32), nullable=False)
    weights: Mapped[dict] = mapped_column(JSONType, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DataIngestionRun(Base, TimestampMixin):
    """Ingestion phase execution metadata and tracking."""
    __tablename__ = "data_ingestion_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    source_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Phase or source: reasoning, propertyradar, crawlers, attom, replay"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Job status: running, success, failure, partial"
    )

    records_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_inserted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_failed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'success', 'failure', 'partial')",
            name="ck_data_ingestion_runs_status"
        ),
        Index("idx_data_ingestion_runs_source_started", "source_type", "started_at"),
    )

    def __repr__(self) -> str:
        return f"<DataIngestionRun(id={self.id}, source={self.source_type}, status={self.status})>"
