from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from qbank_sync.core.ports import ContextLevel
from qbank_sync.db.models import Base, Context

settings = get_settings()


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine, with the thread check disabled for SQLite."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, echo=settings.log_level == "DEBUG", pool_pre_ping=True, **kwargs)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_engine() -> Engine:
    """Get the database engine."""
    return engine


def ensure_system_context(session: Session) -> Context:
    """Return the system context, creating it on an empty database."""
    context = session.scalars(
        select(Context).where(Context.contextlevel == ContextLevel.SYSTEM.value)
    ).first()
    if context is None:
        context = Context(contextlevel=ContextLevel.SYSTEM.value, instanceid=0, parent_id=None)
        session.add(context)
        session.flush()
        logger.info("Created system context {}", context.id)
    return context


def init_db(bind: Engine | None = None) -> None:
    """Initialize database tables and the system context."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    with Session(bind) as session:
        ensure_system_context(session)
        session.commit()
    logger.info("Database tables initialized")


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    One webservice call is one unit of work: commit when the handler
    returns, roll back when anything raises.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()
