"""
Module: erp_kernel.db.engine
Responsibility: Build engines, hold the process-wide session factory, and
    provide the commit-or-rollback ``session_scope``.
Architecture position: Kernel > DB.  Imports models only inside
    create_tables so the metadata is complete before DDL runs.

Backends:
    - PostgreSQL (production): READ COMMITTED, QueuePool with pre-ping.
      Quotation rows are locked with FOR UPDATE while a delivery or invoice is
      validated, so stronger isolation is not needed.
    - SQLite (tests, local runs): in-memory URLs share a single connection
      through StaticPool; file URLs get a busy timeout so threaded tests
      wait for the writer instead of failing.

Failure modes:
    - RuntimeError from get_engine/get_session/get_session_factory/
      session_scope before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from erp_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """Create an engine with backend-appropriate pooling, without registering it.

    ``pool_size``, ``max_overflow`` and ``pool_recycle`` apply to PostgreSQL
    only.  ``pool_timeout`` doubles as the SQLite busy timeout.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        if url.database in (None, "", ":memory:"):
            return create_engine(
                url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": pool_timeout},
        )

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Register the process-wide engine and session factory.

    A second call replaces the first engine without disposing it; call
    reset_engine() in between when that matters.
    """
    global _engine, _SessionFactory

    _engine = build_engine(database_url, echo=echo, **pool_options)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Session factory for callers that open their own sessions (threads, locks)."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on any exception.

    Usage:
        with session_scope() as session:
            ApprovalCommandService(session).approve(request_id, user_id)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    from erp_kernel.db.base import Base
    import erp_kernel.models  # noqa: F401  (populate Base.metadata)

    target = engine or get_engine()
    Base.metadata.create_all(target)
    logger.info("tables_created", extra={"dialect": target.dialect.name})


def drop_tables(engine: Engine | None = None) -> None:
    from erp_kernel.db.base import Base
    import erp_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose and forget the process-wide engine. Used by tests and scripts."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


atexit.register(reset_engine)
