"""
Repository Pattern for Data Access

Provides CRUD operations and domain-specific queries for all models.
Repositories never commit; the caller owns the transaction.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

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
from src.distress_leads.exceptions import ConflictError, DuplicateEvent, NotFoundError
from src.distress_leads.pipelines.deduplication import is_duplicate_error
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ACTIVE_STATUSES = ("prospect", "lead", "negotiation")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseRepository:
    """
    Base repository with common CRUD operations.

    Generic repository that can be extended for specific models.
    """

    def __init__(self, model: Type[T]):
        """
        Initialize repository with model class.

        Args:
            model: SQLAlchemy model class
        """
        self.model = model

    def get_by_id(self, session: Session, id_value: Any) -> Optional[T]:
        """
        Get single record by primary key.

        Args:
            session: Database session
            id_value: Primary key value

        Returns:
            Model instance or None
        """
        return session.get(self.model, id_value)

    def get_all(self, session: Session, limit: Optional[int] = None, offset: int = 0) -> List[T]:
        """
        Get all records with optional pagination.

        Args:
            session: Database session
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            List of model instances
        """
        stmt = select(self.model).order_by(self.model.id).offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt))

    def create(self, session: Session, **kwargs) -> T:
        """
        Create new record.

        Args:
            session: Database session
            **kwargs: Model field values

        Returns:
            Created model instance (flushed, id assigned)
        """
        instance = self.model(**kwargs)
        session.add(instance)
        session.flush()
        logger.debug("repository_create", model=self.model.__name__, id=instance.id)
        return instance

    def count(self, session: Session) -> int:
        return session.scalar(select(func.count()).select_from(self.model))


class PropertyRepository(BaseRepository):
    """Repository for canonical properties keyed on (apn, county)."""

    UPDATABLE_FIELDS = {
        "address", "city", "state", "zip", "owner_name", "owner_phone", "owner_email",
        "estimated_value", "equity_percent", "property_type", "bedrooms", "bathrooms",
        "sqft", "year_built", "lot_size", "notes",
    }

    def __init__(self):
        super().__init__(Property)

    def get_by_identity(self, session: Session, apn: str, county: str) -> Optional[Property]:
        stmt = select(Property).where(Property.apn == apn, Property.county == county)
        return session.scalars(stmt).first()

    def upsert(
        self,
        session: Session,
        apn: str,
        county: str,
        owner_flags: Optional[Dict[str, Any]] = None,
        **fields
    ) -> Tuple[Property, bool]:
        """
        Insert or update a property by golden identity.

        Non-null incoming fields overwrite stored values; owner_flags are
        merged key by key. A concurrent insert of the same identity is
        resolved by re-reading the winner.

        Args:
            session: Database session
            apn: Normalized APN
            county: Normalized county
            owner_flags: Flags to merge into the stored map
            **fields: Column values (None values are ignored)

        Returns:
            Tuple of (property, created)
        """
        values = {k: v for k, v in fields.items() if k in self.UPDATABLE_FIELDS and v is not None}
        existing = self.get_by_identity(session, apn, county)
        created = False

        if existing is None:
            try:
                with session.begin_nested():
                    existing = Property(apn=apn, county=county, owner_flags=dict(owner_flags or {}), **values)
                    session.add(existing)
                created = True
            except IntegrityError as e:
                if not is_duplicate_error(e):
                    raise
                existing = self.get_by_identity(session, apn, county)
                if existing is None:
                    raise
        if not created:
            for key, value in values.items():
                setattr(existing, key, value)
            if owner_flags:
                existing.owner_flags = {**(existing.owner_flags or {}), **owner_flags}
            session.flush()

        logger.debug("property_upserted", property_id=existing.id, apn=apn, county=county, created=created)
        return existing, created

    def update_fields(self, session: Session, property_id: int, fields: Dict[str, Any]) -> Property:
        prop = self.get_by_id(session, property_id)
        if prop is None:
            raise NotFoundError(f"Property {property_id} not found", property_id=property_id)
        for key, value in fields.items():
            setattr(prop, key, value)
        session.flush()
        return prop


class DistressEventRepository(BaseRepository):
    """Repository for append-only distress events."""

    def __init__(self):
        super().__init__(DistressEvent)

    def add_event(self, session: Session, **values) -> DistressEvent:
        """
        Insert an event inside a SAVEPOINT.

        Raises:
            DuplicateEvent: The fingerprint already exists (only the savepoint is rolled back)
            IntegrityError: Any other constraint violation
        """
        event = DistressEvent(**values)
        try:
            with session.begin_nested():
                session.add(event)
        except IntegrityError as e:
            if not is_duplicate_error(e):
                raise
            raise DuplicateEvent(values.get("fingerprint")) from e
        return event

    def insert_event(self, session: Session, **values) -> Tuple[Optional[DistressEvent], bool]:
        """
        Insert an event, counting a fingerprint collision instead of raising.

        Returns:
            Tuple of (event or None, deduped)
        """
        try:
            return self.add_event(session, **values), False
        except DuplicateEvent as e:
            logger.debug("distress_event_deduped", fingerprint=e.fingerprint)
            return None, True

    def get_by_fingerprint(self, session: Session, fingerprint: str) -> Optional[DistressEvent]:
        return session.scalars(select(DistressEvent).where(DistressEvent.fingerprint == fingerprint)).first()

    def list_for_property(self, session: Session, property_id: int) -> List[DistressEvent]:
        stmt = (
            select(DistressEvent)
            .where(DistressEvent.property_id == property_id)
            .order_by(DistressEvent.created_at, DistressEvent.id)
        )
        return list(session.scalars(stmt))


class ScoringRecordRepository(BaseRepository):
    """Repository for append-only deterministic scores."""

    def __init__(self):
        super().__init__(ScoringRecord)

    def latest_for_property(self, session: Session, property_id: int) -> Optional[ScoringRecord]:
        stmt = (
            select(ScoringRecord)
            .where(ScoringRecord.property_id == property_id)
            .order_by(desc(ScoringRecord.created_at), desc(ScoringRecord.id))
            .limit(1)
        )
        return session.scalars(stmt).first()

    def history_for_property(self, session: Session, property_id: int, limit: int = 20) -> List[ScoringRecord]:
        stmt = (
            select(ScoringRecord)
            .where(ScoringRecord.property_id == property_id)
            .order_by(desc(ScoringRecord.created_at), desc(ScoringRecord.id))
            .limit(limit)
        )
        return list(session.scalars(stmt))


class PredictionRecordRepository(BaseRepository):
    """Repository for append-only predictive scores."""

    def __init__(self):
        super().__init__(PredictionRecord)

    def latest_for_property(self, session: Session, property_id: int) -> Optional[PredictionRecord]:
        stmt = (
            select(PredictionRecord)
            .where(PredictionRecord.property_id == property_id)
            .order_by(desc(PredictionRecord.created_at), desc(PredictionRecord.id))
            .limit(1)
        )
        return session.scalars(stmt).first()


class LeadRepository(BaseRepository):
    """
    Repository for workflow leads.

    Every write increments lock_version. Guarded writes go through
    compare_and_set.
    """

    def __init__(self):
        super().__init__(Lead)

    def get_active_for_property(self, session: Session, property_id: int) -> Optional[Lead]:
        stmt = (
            select(Lead)
            .where(Lead.property_id == property_id, Lead.status.in_(ACTIVE_STATUSES))
            .order_by(Lead.id)
        )
        return session.scalars(stmt).first()

    def create_lead(self, session: Session, property_id: int, priority: int, source: str,
                    tags: Optional[List[str]] = None, notes: Optional[str] = None) -> Lead:
        return self.create(
            session,
            property_id=property_id,
            status="prospect",
            priority=priority,
            source=source,
            tags=list(tags or []),
            notes=notes,
            lock_version=1,
            promoted_at=utcnow(),
        )

    def current_version(self, session: Session, lead_id: int) -> Optional[int]:
        return session.scalar(select(Lead.lock_version).where(Lead.id == lead_id))

    def compare_and_set(self, session: Session, lead_id: int, expected_version: int,
                        values: Dict[str, Any]) -> Lead:
        """
        Conditional update guarded by lock_version.

        Issues ``UPDATE leads SET ..., lock_version = lock_version + 1
        WHERE id = :id AND lock_version = :expected``.

        Args:
            session: Database session
            lead_id: Lead ID
            expected_version: Version the caller last read
            values: Column values to set

        Returns:
            Refreshed lead

        Raises:
            ConflictError: If no row matched (someone else wrote first)
        """
        stmt = (
            update(Lead)
            .where(Lead.id == lead_id, Lead.lock_version == expected_version)
            .values(**values, lock_version=Lead.lock_version + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        if result.rowcount == 0:
            current = self.current_version(session, lead_id)
            logger.info(
                "lead_version_conflict",
                lead_id=lead_id,
                expected_version=expected_version,
                current_version=current,
            )
            raise ConflictError(lead_id, expected_version, current)

        lead = session.get(Lead, lead_id, populate_existing=True)
        logger.debug("lead_updated", lead_id=lead_id, lock_version=lead.lock_version)
        return lead

    def refresh_priority(self, session: Session, lead: Lead, priority: int,
                         tags: Optional[List[str]] = None) -> Lead:
        """Refresh priority and merge tags on an existing lead (unguarded write)."""
        merged_tags = list(dict.fromkeys([*(lead.tags or []), *(tags or [])]))
        stmt = (
            update(Lead)
            .where(Lead.id == lead.id)
            .values(priority=priority, tags=merged_tags, lock_version=Lead.lock_version + 1,
                    updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        session.execute(stmt)
        return session.get(Lead, lead.id, populate_existing=True)

    def list_leads(self, session: Session, status: Optional[str] = None,
                   limit: int = 50, offset: int = 0) -> List[Lead]:
        stmt = select(Lead).order_by(desc(Lead.priority), Lead.id).offset(offset).limit(limit)
        if status:
            stmt = stmt.where(Lead.status == status)
        return list(session.scalars(stmt))

    def count_active_for_property(self, session: Session, property_id: int) -> int:
        return session.scalar(
            select(func.count()).select_from(Lead)
            .where(Lead.property_id == property_id, Lead.status.in_(ACTIVE_STATUSES))
        )


class EventLogRepository(BaseRepository):
    """Repository for the append-only audit trail."""

    def __init__(self):
        super().__init__(EventLog)

    def append(self, session: Session, actor: str, action: str, entity_type: str,
               entity_id: Optional[Any] = None, details: Optional[Dict[str, Any]] = None) -> EventLog:
        return self.create(
            session,
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=details or {},
        )

    def list_by_action(self, session: Session, action: str, limit: int = 100) -> List[EventLog]:
        stmt = select(EventLog).where(EventLog.action == action).order_by(desc(EventLog.id)).limit(limit)
        return list(session.scalars(stmt))

    def list_for_entity(self, session: Session, entity_type: str, entity_id: Any) -> List[EventLog]:
        stmt = (
            select(EventLog)
            .where(EventLog.entity_type == entity_type, EventLog.entity_id == str(entity_id))
            .order_by(EventLog.id)
        )
        return list(session.scalars(stmt))


class ComplianceRepository(BaseRepository):
    """Repository for do-not-contact list entries."""

    def __init__(self):
        super().__init__(ComplianceEntry)

    def list_types_for_phone(self, session: Session, phone: str) -> List[str]:
        stmt = select(ComplianceEntry.list_type).where(ComplianceEntry.phone == phone)
        return sorted(set(session.scalars(stmt)))

    def add_entry(self, session: Session, phone: str, list_type: str, source: Optional[str] = None,
                  name: Optional[str] = None, reason: Optional[str] = None) -> Tuple[Optional[ComplianceEntry], bool]:
        """Add a phone to a list. Returns (entry, created); an existing entry is not duplicated."""
        entry = ComplianceEntry(phone=phone, list_type=list_type, source=source, name=name, reason=reason)
        try:
            with session.begin_nested():
                session.add(entry)
        except IntegrityError as e:
            if not is_duplicate_error(e):
                raise
            return None, False
        return entry, True


class ScoringWeightSetRepository(BaseRepository):
    """Repository for calibrated predictive weight schemas."""

    def __init__(self):
        super().__init__(ScoringWeightSet)

    def get_active(self, session: Session) -> Optional[ScoringWeightSet]:
        stmt = (
            select(ScoringWeightSet)
            .where(ScoringWeightSet.is_active.is_(True))
            .order_by(desc(ScoringWeightSet.id))
            .limit(1)
        )
        return session.scalars(stmt).first()

    def activate(self, session: Session, model_version: str, weights: Dict[str, float],
                 created_by: Optional[str] = None, notes: Optional[str] = None) -> ScoringWeightSet:
        """Store a validated schema and make it the only active one."""
        session.execute(
            update(ScoringWeightSet)
            .where(ScoringWeightSet.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        weight_set = self.create(
            session,
            model_version=model_version,
            weights=dict(weights),
            is_active=True,
            created_by=created_by,
            notes=notes,
        )
        logger.info("weight_set_activated", weight_set_id=weight_set.id, model_version=model_version)
        return weight_set


class DataIngestionRunRepository(BaseRepository):
    """Repository for DataIngestionRun model (phase tracking)."""

    def __init__(self):
        super().__init__(DataIngestionRun)

    def create_run(
        self,
        session: Session,
        source_type: str,
        started_at: Optional[datetime] = None
    ) -> DataIngestionRun:
        """
        Create new ingestion run.

        Args:
            session: Database session
            source_type: Phase or source name
            started_at: Start timestamp (defaults to now)

        Returns:
            DataIngestionRun instance
        """
        run = self.create(
            session,
            source_type=source_type,
            status="running",
            started_at=started_at or utcnow(),
        )
        logger.info("ingestion_run_created", run_id=run.id, source_type=source_type)
        return run

    def complete_run(
        self,
        session: Session,
        run_id: int,
        status: str,
        records_processed: int = 0,
        records_inserted: int = 0,
        records_updated: int = 0,
        records_failed: int = 0,
        error_message: Optional[str] = None,
        error_details: Optional[Dict] = None
    ) -> DataIngestionRun:
        """
        Mark ingestion run as complete.

        Args:
            session: Database session
            run_id: Run ID
            status: Final status (success, failure, partial)
            records_processed: Total records processed
            records_inserted: Records inserted
            records_updated: Records updated
            records_failed: Records failed
            error_message: Error message if failed
            error_details: Structured error data

        Returns:
            Updated DataIngestionRun instance
        """
        run = self.get_by_id(session, run_id)
        if not run:
            raise NotFoundError(f"DataIngestionRun {run_id} not found", run_id=run_id)

        run.status = status
        run.records_processed = records_processed
        run.records_inserted = records_inserted
        run.records_updated = records_updated
        run.records_failed = records_failed
        run.error_message = error_message
        run.error_details = error_details
        run.completed_at = utcnow()
        session.flush()

        logger.info(
            "ingestion_run_completed",
            run_id=run_id,
            status=status,
            records_processed=records_processed,
            records_failed=records_failed,
        )
        return run
