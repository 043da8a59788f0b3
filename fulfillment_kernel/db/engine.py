"""
Module: fulfillment_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factories, and
    transactional scope utilities.  This is the single point of database
    connection configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py and db/triggers.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except for create_tables/drop_tables which import models and triggers).

Invariants enforced:
    - No module-level engine.  Engines and session factories are built
      explicitly and owned by whoever constructs them (normally one
      ``FulfillmentService`` per process).
    - PostgreSQL sessions run at READ COMMITTED with explicit row-level
      locking (``FOR UPDATE SKIP LOCKED``) where the allocation engine needs it.
    - SQLite connections take transaction control away from the driver so
      that ``begin_write()`` can open a ``BEGIN IMMEDIATE`` transaction.
      Write transactions then acquire the database write lock up front
      instead of failing half-way on a lock upgrade.

Failure modes:
    - OperationalError on deadlock during trigger installation (retried up to 3x).
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.

Audit relevance:
    All database transactions flow through sessions created by this module.
    The session_scope() context manager ensures atomic commit-or-rollback
    semantics for every kernel operation.
"""

import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.engine")

# Execution option read by the SQLite "begin" hook.
WRITE_LOCK_OPTION = "fulfillment_write_lock"

# SQLSTATEs that mean "try the transaction again"
_TRANSIENT_PGCODES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
})

_TRANSIENT_SQLITE_MESSAGES = (
    "database is locked",
    "database table is locked",
)


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Build a SQLAlchemy engine for PostgreSQL or SQLite.

    Args:
        database_url: Connection URL (postgresql://... or sqlite:///...).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection; also the
            SQLite busy timeout.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    if database_url.startswith("sqlite"):
        engine = _build_sqlite_engine(database_url, echo, pool_timeout)
        dialect = "sqlite"
    else:
        engine = create_engine(
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
        dialect = engine.dialect.name

    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return engine


def _build_sqlite_engine(database_url: str, echo: bool, busy_timeout: int) -> Engine:
    in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
    kwargs: dict = {
        "echo": echo,
        "connect_args": {"timeout": busy_timeout, "check_same_thread": False},
    }
    if in_memory:
        # One shared connection, otherwise every thread sees its own empty db
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself (see _sqlite_begin)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn: Connection):
        if conn.get_execution_options().get(WRITE_LOCK_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


def build_engine_from_config(config) -> Engine:
    """Build an engine from a ``FulfillmentConfig``."""
    return build_engine(
        config.database_url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Build the session factory for an engine.

    Each thread or request should create its own session from the factory.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session],
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception as exc:
        session.rollback()
        logger.debug(
            "transaction_rolled_back",
            extra={"exc_type": type(exc).__name__},
        )
        raise
    finally:
        session.close()


def begin_write(session: Session) -> Connection:
    """
    Open the session's transaction with write intent.

    Must be the first statement of the transaction.  On SQLite this emits
    ``BEGIN IMMEDIATE`` so the write lock is taken before any read; on
    PostgreSQL it is a plain BEGIN and row locks do the work.
    """
    return session.connection(execution_options={WRITE_LOCK_OPTION: True})


def is_transient_error(exc: BaseException) -> bool:
    """
    True if ``exc`` is a lock/serialization conflict worth retrying.

    Programming errors (missing tables, bad SQL) are NOT transient even
    though SQLite reports some of them as OperationalError.
    """
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _TRANSIENT_PGCODES:
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower()
        return any(m in message for m in _TRANSIENT_SQLITE_MESSAGES)
    return False


def supports_skip_locked(engine_or_session) -> bool:
    """True for backends with ``SELECT ... FOR UPDATE SKIP LOCKED``."""
    bind = engine_or_session.get_bind() if isinstance(engine_or_session, Session) else engine_or_session
    return bind.dialect.name == "postgresql"


def is_postgres(engine: Engine) -> bool:
    """Check if the engine is PostgreSQL."""
    return engine.dialect.name == "postgresql"


def create_tables(engine: Engine, install_triggers: bool = True) -> None:
    """
    Create all tables defined in the models and optionally install triggers.

    Args:
        engine: Target engine.
        install_triggers: If True and the backend is PostgreSQL, install the
            database-level immutability triggers.

    Raises:
        OperationalError: If trigger installation fails after 3 retries.
    """
    from fulfillment_kernel.db.base import Base
    import fulfillment_kernel.models  # noqa: F401  (registers tables)

    Base.metadata.create_all(engine)

    if install_triggers and is_postgres(engine):
        from fulfillment_kernel.db.triggers import install_immutability_triggers

        max_retries = 3
        for attempt in range(max_retries):
            try:
                install_immutability_triggers(engine)
                break
            except OperationalError as exc:
                if "deadlock" in str(exc).lower() and attempt < max_retries - 1:
                    logger.warning(
                        "trigger_install_deadlock_retry",
                        extra={"attempt": attempt + 1, "max_retries": max_retries},
                    )
                    engine.dispose()
                    time.sleep(0.5 * (attempt + 1))
                else:
                    raise


def drop_tables(engine: Engine) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from fulfillment_kernel.db.base import Base
    import fulfillment_kernel.models  # noqa: F401

    if is_postgres(engine):
        from fulfillment_kernel.db.triggers import uninstall_immutability_triggers

        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)
