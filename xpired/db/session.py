import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from xpired.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: Optional[str] = None, **overrides) -> Engine:
    """
    Build an engine for ``url`` (defaults to settings).

    PostgreSQL connections get a pool and a server-side statement timeout so
    no queue or store call can block indefinitely.
    """
    url = url or settings.SQLALCHEMY_DATABASE_URI
    kwargs = {"pool_pre_ping": True, "echo": False}
    if url.startswith("postgresql"):
        kwargs.update(
            pool_size=10,
            max_overflow=20,
            pool_recycle=300,  # Recycle connections every 5 minutes
            pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
            connect_args={
                "connect_timeout": settings.DB_POOL_TIMEOUT_SECONDS,
                "options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}",
            },
        )
    kwargs.update(overrides)
    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # Bindings rely on ON DELETE CASCADE from documents
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Session with commit on success and rollback on any exception.

    Usage:
        with session_scope(factory) as db:
            db.add(obj)
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database session error: {e}")
        raise
    finally:
        db.close()
