"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the stale queue and imported key sets.
"""

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy import (
    create_engine,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import StoreUnavailable
from .logger import get_logger
from .retry import RetryError, exponential_backoff, is_transient_error

Base = declarative_base()


class QueueItem(Base):
    """One pending stale entity for a job."""

    __tablename__ = "stale_queue"
    __table_args__ = (
        UniqueConstraint("job_id", "entity_id", name="uq_stale_queue_job_entity"),
    )

    item_id = Column(Integer, primary_key=True, autoincrement=True)  # FIFO order
    job_id = Column(String, nullable=False, index=True)
    entity_id = Column(String, nullable=False)
    enqueued_at = Column(DateTime, nullable=False, default=datetime.now)
    attempts = Column(Integer, nullable=False, default=0)


class ImportedKey(Base):
    """Source key produced by a job's most recent successful import."""

    __tablename__ = "imported_keys"

    job_id = Column(String, primary_key=True)
    source_key = Column(String, primary_key=True)
    entity_id = Column(String, nullable=False)
    imported_at = Column(DateTime, nullable=False, default=datetime.now)


def get_engine(db_path: Path):
    """
    Create an engine for the SQLite database file.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine usable from several threads
    """
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )


def init_database(db_path: Path):
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file

    Returns:
        The engine the tables were created with
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    return engine


@contextmanager
def session_scope(session_factory):
    """Yield a session that commits on success and rolls back on error."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class SQLiteStore:
    """
    Shared plumbing for the SQLite-backed stores.

    Every operation runs in its own transaction. Transient OperationalErrors
    (lock contention, brief outages) are retried with exponential backoff;
    anything else, or exhausted retries, surfaces as StoreUnavailable.
    """

    def __init__(self, db_path: Path, max_retries: int = 3, retry_delay: float = 0.1):
        self.db_path = Path(db_path)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        try:
            self.engine = init_database(self.db_path)
        except (OSError, SQLAlchemyError) as e:
            raise StoreUnavailable(None, str(e)) from e
        self._Session = sessionmaker(bind=self.engine)

    def _run(self, job_id: Optional[str], operation: Callable):
        """Run operation(session) in a transaction and return its result."""

        def attempt():
            try:
                with session_scope(self._Session) as session:
                    return operation(session)
            except OperationalError as e:
                if not is_transient_error(e):
                    raise StoreUnavailable(job_id, str(e)) from e
                raise
            except SQLAlchemyError as e:
                raise StoreUnavailable(job_id, str(e)) from e

        def on_retry(attempt_no, exception, delay):
            get_logger().warning(
                "Retrying store operation",
                job_id=job_id,
                attempt=attempt_no,
                delay=delay,
                error=str(exception),
            )

        retried = exponential_backoff(
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            exceptions=(OperationalError,),
            on_retry=on_retry,
        )(attempt)

        try:
            return retried()
        except RetryError as e:
            raise StoreUnavailable(job_id, str(e)) from e

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
