"""Database configuration and session management.

Events, users and attendance records live in SQLModel tables. An event keeps
its roles and staff-response lists in JSON columns, so each event is still a
single document-shaped row that can be read and rewritten in one statement.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Readers are not blocked while a response
      or clock-in is being written.

    - **Foreign Keys**: Disabled by default in SQLite. Enabled so attendance
      records always reference an existing event.

    - **timeout**: How long a writer waits on a locked database before
      SQLite gives up with ``database is locked``. Surfaces to clients as a
      retryable 503.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from staffing.core.config import settings

connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {
        "check_same_thread": False,
        "timeout": settings.database_timeout_seconds,
    }

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection."""
    if not settings.database_url.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    # Import for side effect: registers the tables on SQLModel.metadata
    import staffing.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
