"""
procurement_kernel.db.engine -- process-wide engine and session factory.

Supported backends are PostgreSQL (READ COMMITTED) and SQLite.  The stage
compare-and-swap is a single conditional UPDATE, so neither backend needs
row locks or a stronger isolation level.  SQLite connections enable foreign
keys and wait on a busy timeout rather than failing while another writer
holds the database lock.

Callers must run ``init_engine_from_url`` (or ``init_engine_from_settings``)
before asking for sessions; otherwise a RuntimeError is raised.
Initialization also installs the ORM immutability listeners.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from procurement_kernel.config import KernelSettings
from procurement_kernel.db.immutability import register_immutability_listeners
from procurement_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _engine_options(url: URL, pool_size: int, max_overflow: int, **server_options: Any) -> dict[str, Any]:
    if url.get_backend_name() != "sqlite":
        return {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "isolation_level": "READ COMMITTED",
            **server_options,
        }

    options: dict[str, Any] = {
        "connect_args": {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
    }
    if url.database in (None, "", ":memory:"):
        # every checkout must see the same in-memory database
        options["poolclass"] = StaticPool
    else:
        options.update(pool_size=pool_size, max_overflow=max_overflow)
    return options


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory for database_url and install
    the immutability listeners.

    A second call replaces the first without disposing it; call
    ``reset_engine`` in between.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    _engine = create_engine(
        url,
        echo=echo,
        **_engine_options(
            url,
            pool_size,
            max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        ),
    )
    if _engine.dialect.name == "sqlite":
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    register_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "database": url.database,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def init_engine_from_settings(settings: KernelSettings) -> Engine:
    configure_logging(level=settings.log_level)
    return init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
    )


def _not_initialized() -> RuntimeError:
    return RuntimeError("Engine not initialized. Call init_engine_from_url() first.")


def get_engine() -> Engine:
    if _engine is None:
        raise _not_initialized()
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The session factory; threads each open their own session from it."""
    if _SessionFactory is None:
        raise _not_initialized()
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    One transaction: commit on normal exit, roll back and re-raise on error.

    Usage::

        with session_scope() as session:
            session.add(program)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from procurement_kernel.db.base import Base
    from procurement_kernel.models import import_all_models

    import_all_models()
    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    """Drop every kernel table.  Tests only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()


def is_sqlite() -> bool:
    return _engine is not None and _engine.dialect.name == "sqlite"
