import logging
import time
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, TypeVar

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend.core.config import settings


logger = logging.getLogger(__name__)

T = TypeVar('T')

_connect_args = {'check_same_thread': False} if settings.database_url.startswith('sqlite') else {}

engine = create_engine(settings.database_url, connect_args=_connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_feedback_schema_checked = False


def utc_now() -> datetime:
    # Stored naive so SQLite and Postgres compare the same way.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_iso(value: datetime) -> str:
    return value.replace(tzinfo=timezone.utc).isoformat()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_with_retries(
    operation: Callable[[], T],
    db: Session | None = None,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    """Run ``operation``, retrying transient connection failures.

    Only ``OperationalError`` is retried. The session is rolled back between
    attempts so a broken transaction does not poison the next try.
    """
    max_attempts = attempts or settings.db_retry_attempts
    delay = settings.db_retry_backoff_seconds if backoff_seconds is None else backoff_seconds

    attempt = 1
    while True:
        try:
            return operation()
        except OperationalError:
            if db is not None:
                db.rollback()
            if attempt >= max_attempts:
                raise
            logger.warning('Database operation failed (attempt %s of %s), retrying.', attempt, max_attempts)
            time.sleep(delay * (2 ** (attempt - 1)))
            attempt += 1


def ensure_feedback_schema(bind=None) -> None:
    global _feedback_schema_checked

    if _feedback_schema_checked and bind is None:
        return

    target = bind or engine

    with _schema_lock:
        if _feedback_schema_checked and bind is None:
            return

        inspector = inspect(target)

        if 'feedback' not in inspector.get_table_names():
            return

        with target.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_feedback_teacher_created ON feedback(teacher_id, created_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_feedback_student_created ON feedback(student_id, created_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_feedback_subject ON feedback(subject)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_feedback_status ON feedback(status)')
            )

        if bind is None:
            _feedback_schema_checked = True
