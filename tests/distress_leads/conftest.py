"""
Shared fixtures for the distress lead tests.

Every test gets an in-memory SQLite database. Savepoints are used throughout
the ingest path, so the pysqlite driver is switched to explicit BEGIN.
"""
from datetime import date

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.distress_leads.db.base import Base, import_all_models
from src.distress_leads.ingestion.record_pipeline import RecordPipeline

AS_OF = date(2025, 6, 1)


def build_sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    import_all_models()
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def engine():
    engine = build_sqlite_engine()
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def test_db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def pipeline():
    """Record pipeline pinned to a fixed reference date."""
    return RecordPipeline(as_of=AS_OF)
