"""SQLAlchemy engine and session factory.

Provides:
- engine:               the application-wide Engine instance
- SessionLocal:         the sessionmaker factory handed to repositories
- get_sync_session():   context manager yielding a Session
- build_engine():       engine constructor usable with any DSN (tests use it
                        with an in-memory SQLite URL)
- init_db():            create all tables on an engine (local SQLite runs)

Every consumer (API routes, Celery tasks, the import pipeline) is synchronous,
so a single sync engine serves the whole process.  PostgreSQL connections go
through psycopg2; the pool is sized for a FastAPI process plus a handful of
Celery worker threads:
- pool_size=5:          baseline connections held open
- max_overflow=10:      burst connections allowed above pool_size
- pool_pre_ping=True:   verify connection health before handing out
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------------------------
# Import Base so callers can do:
#   from feed_importer.core.database import Base
# without importing individual model files.
# ---------------------------------------------------------------------------
from feed_importer.core.models import Base


def _normalize_database_url(url: str) -> str:
    """Pin PostgreSQL URLs to the psycopg2 driver."""
    return url.replace("postgresql+asyncpg://", "postgresql+psycopg2://").replace(
        "postgresql://", "postgresql+psycopg2://"
    )


def build_engine(database_url: str) -> Engine:
    """Create an engine from a database URL.

    Separated from module-level code so tests can call this with a test DSN
    without importing settings.  In-memory SQLite URLs share one connection
    across threads so FastAPI's threadpool sees the same database.
    """
    url = _normalize_database_url(database_url)
    if url.startswith("sqlite"):
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    """Return a sessionmaker bound to *bind* with the project-wide options."""
    return sessionmaker(
        bind=bind,
        expire_on_commit=False,
        autoflush=False,
    )


def _get_database_url() -> str:
    """Resolve the database URL from application settings.

    Imported lazily so that test code can patch settings before the engine
    is created.
    """
    from feed_importer.config.settings import get_settings  # noqa: PLC0415

    return str(get_settings().database_url)


# ---------------------------------------------------------------------------
# Application-wide engine and session factory.
# These are module-level singletons created on first import.
# ---------------------------------------------------------------------------
engine = build_engine(_get_database_url())

SessionLocal: sessionmaker[Session] = build_session_factory(engine)


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy Session.

    The session is rolled back on exception and always closed.  The caller
    is responsible for committing so that transaction boundaries stay
    explicit.

    Usage::

        with get_sync_session() as session:
            session.execute(text("SELECT 1"))
            session.commit()
    """
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Engine | None = None) -> None:
    """Create every table known to ``Base.metadata`` on *bind*.

    Production schemas are managed by Alembic; this is for local SQLite
    runs and the test suite.
    """
    Base.metadata.create_all(bind=bind or engine)
