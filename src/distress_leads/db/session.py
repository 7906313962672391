"""
Database Session Management

Provides database connection pooling and session management.
"""
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, exc, pool, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.distress_leads.utils.logger import get_logger

logger = get_logger(__name__)


def build_engine(database_url: str = None, **overrides) -> Engine:
    """
    Create an engine for the configured database.

    Pool sizing only applies to server databases; SQLite URLs get the
    default pool.
    """
    url = database_url or settings.database_url
    kwargs = {"echo": settings.database_echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
        )
    kwargs.update(overrides)
    return create_engine(url, **kwargs)


engine = build_engine()


@event.listens_for(engine, "connect")
def receive_connect(dbapi_conn, connection_record):
    logger.debug("database_connection_established")


@event.listens_for(pool.Pool, "invalidate")
def receive_invalidate(dbapi_conn, connection_record, exception):
    """
    Event listener for connection invalidation.

    Logs when a connection is marked as invalid and removed from pool.
    """
    logger.warning(
        "database_connection_invalidated",
        exception=str(exception) if exception else None
    )


# Create session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False
)


@contextmanager
def session_scope(factory: sessionmaker = None) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Commits on success, rolls back and logs on error, always closes.

    Args:
        factory: Session factory (defaults to SessionLocal)

    Yields:
        Database session
    """
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except exc.SQLAlchemyError as e:
        session.rollback()
        logger.error(
            "database_session_rollback",
            error=str(e),
            error_type=type(e).__name__
        )
        raise
    except Exception as e:
        session.rollback()
        logger.error(
            "database_session_error",
            error=str(e),
            error_type=type(e).__name__
        )
        raise
    finally:
        session.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Get database session with automatic cleanup.

    Usage:
        with get_db_session() as session:
            PropertyRepository().get_by_identity(session, apn, county)
    """
    with session_scope(SessionLocal) as session:
        yield session


def health_check(session: Session = None) -> bool:
    """
    Check database connection health.

    Returns:
        True if database is accessible, False otherwise
    """
    try:
        if session is not None:
            session.execute(text("SELECT 1"))
        else:
            with get_db_session() as scoped:
                scoped.execute(text("SELECT 1"))
        return True
    except exc.SQLAlchemyError as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        return False


def close_connections():
    """
    Dispose of the engine. Called on application shutdown.
    """
    engine.dispose()
    logger.info("database_connections_closed")


def create_all_tables(bind: Engine = None):
    """
    Create all tables defined in models.

    Alembic owns the production schema; this is for tests and local setup.
    """
    from src.distress_leads.db.base import Base, import_all_models

    import_all_models()
    Base.metadata.create_all(bind=bind or engine)
    logger.info("database_tables_created")
