"""
Module: repair_kernel.db.engine
Responsibility: The one place a database engine and session factory are built.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py.  create_tables/drop_tables import models/ only to
    populate the metadata.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  Single-winner writes rely
      on SELECT ... FOR UPDATE on the quote row plus conditional UPDATEs on
      token rows, not on isolation level.
    - SQLite takes its write lock at BEGIN (BEGIN IMMEDIATE).  Concurrent
      writers queue on the lock for up to ``pool_timeout`` seconds instead
      of failing on a lock upgrade.
    - Sessions do not expire attributes on commit; WorkflowResult snapshots
      are built before commit and stay valid.
    - Immutability listeners are registered with every engine.

Failure modes:
    - RuntimeError when a session is requested before init_engine_from_url().
"""

import atexit

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from repair_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _create_sqlite_engine(database_url: str, echo: bool, lock_timeout: int) -> Engine:
    engine = create_engine(
        database_url,
        echo=echo,
        connect_args={"timeout": lock_timeout, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        # SQLAlchemy emits BEGIN itself from here on.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def _create_postgres_engine(
    database_url: str,
    echo: bool,
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    pool_timeout: int,
    pool_recycle: int,
) -> Engine:
    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


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
    Build the process-wide engine and session factory.

    Args:
        database_url: ``postgresql://...`` or ``sqlite:///path.db``.
        echo: Log every SQL statement.
        pool_size, max_overflow, pool_pre_ping, pool_recycle: PostgreSQL
            connection pool settings.
        pool_timeout: Seconds to wait for a pooled connection (PostgreSQL)
            or for the write lock (SQLite).

    A second call replaces the previous engine without disposing it; call
    reset_engine() first when that matters.
    """
    global _engine, _SessionFactory

    from repair_kernel.db.immutability import register_immutability_listeners

    dialect = make_url(database_url).get_backend_name()
    if dialect == "sqlite":
        _engine = _create_sqlite_engine(database_url, echo, pool_timeout)
    else:
        _engine = _create_postgres_engine(
            database_url, echo, pool_size, max_overflow, pool_pre_ping, pool_timeout, pool_recycle
        )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    register_immutability_listeners()
    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": None if dialect == "sqlite" else pool_size,
            "echo": echo,
        },
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """A new session; the caller closes it."""
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """The session factory.  Every thread must open its own session from it."""
    return _require_factory()


def create_tables() -> None:
    from repair_kernel.db.base import Base
    import repair_kernel.models  # noqa: F401  registers every table on Base.metadata

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every kernel table.  Tests and local resets only."""
    from repair_kernel.db.base import Base
    import repair_kernel.models  # noqa: F401  registers every table on Base.metadata

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
