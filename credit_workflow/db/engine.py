"""
Module: credit_workflow.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  The single point of database
    connection configuration for the SQL-backed repositories.
Architecture position: DB.  May import from db/base.py.  create_tables
    imports models so Base.metadata is populated.

Invariants enforced:
    - PostgreSQL is the production backend (READ COMMITTED, pooled
      connections with pre-ping; instance updates use SELECT ... FOR UPDATE).
    - SQLite is accepted for development and tests; in-memory databases
      share one connection through a static pool.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from credit_workflow.logging_config import get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_options(url: URL, echo: bool, pool: dict[str, Any]) -> dict[str, Any]:
    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {
            "echo": echo,
            "connect_args": {"check_same_thread": False},
        }
        if url.database in (None, "", ":memory:"):
            # one shared connection, otherwise each session sees an empty database
            options["poolclass"] = StaticPool
        return options
    return {
        "echo": echo,
        "poolclass": QueuePool,
        "isolation_level": "READ COMMITTED",
        **pool,
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process-wide engine and session factory for ``database_url``.

    Calling it again replaces both.  The pool arguments only apply to
    server databases; SQLite ignores them.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    _engine = create_engine(
        url,
        **_engine_options(
            url,
            echo,
            {
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "pool_pre_ping": pool_pre_ping,
                "pool_timeout": pool_timeout,
                "pool_recycle": pool_recycle,
            },
        ),
    )
    if url.get_backend_name() == "sqlite":
        _enable_sqlite_savepoints(_engine)

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "echo": echo},
    )
    return _engine


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so SAVEPOINT works."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def get_engine() -> Engine:
    """The engine created by ``init_engine_from_url``.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Session factory bound to the current engine.

    Worker threads each create their own Session from it; a Session is
    never shared across threads.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    """A new Session from ``get_session_factory()``; the caller closes it."""
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed, and the exception
        is re-raised.

    Usage:
        with session_scope() as session:
            service = build_workflow_service(session)
            service.transition_to(...)
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


def _metadata():
    from credit_workflow.db.base import Base
    import credit_workflow.models  # noqa: F401  (registers tables on Base.metadata)

    return Base.metadata


def create_tables() -> None:
    """Create the workflow tables that do not exist yet."""
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (test teardown)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
