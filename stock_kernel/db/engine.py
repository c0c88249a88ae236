"""
Module: stock_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory management,
    and transactional scope utilities.  This is the single point of store
    connection configuration.
Architecture position: Kernel > DB.  May import from db/base.py,
    db/immutability.py, db/triggers.py and db/types.py.  From domain/ only
    identity.normalize, which SQLite connections expose as a SQL function.
    MUST NOT import from services/, selectors/, or outer layers
    (create_tables imports models).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED with explicit row locks
      (identity lock rows) where stronger isolation is needed.
    - Every PostgreSQL transaction starts with SET LOCAL lock_timeout and
      statement_timeout, so no statement waits without bound.
    - SQLite connections enforce foreign keys and use a bounded busy
      timeout.  In-memory SQLite shares one connection (StaticPool).
    - SQLite connections carry decimal_sum (exact quantity SUM) and
      stock_normalize (identity normalization) SQL functions.
    - Sessions created here always carry the append-only ORM listeners.

Failure modes:
    - sqlalchemy.exc.TimeoutError when the pool is exhausted for longer
      than pool_timeout (translated to ConflictError by the facade).
    - OperationalError on lock/statement timeout (translated likewise).

Audit relevance:
    session_scope() gives atomic commit-or-rollback semantics, which is
    what makes a bulk import all-or-nothing.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.db.types import DecimalSumAggregate
from stock_kernel.domain.identity import normalize
from stock_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


def _configure_sqlite_connection(dbapi_connection, connection_record):
    # Hand transaction control to SQLAlchemy so SAVEPOINT behaves.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    dbapi_connection.create_aggregate("decimal_sum", 1, DecimalSumAggregate)
    dbapi_connection.create_function("stock_normalize", 1, normalize, deterministic=True)


def _begin_sqlite_transaction(conn):
    conn.exec_driver_sql("BEGIN")


def _driver_url(database_url: str) -> str:
    # Bare postgresql:// would select psycopg2; this project ships psycopg 3.
    if database_url.startswith("postgresql://"):
        return "postgresql+psycopg://" + database_url[len("postgresql://"):]
    return database_url


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_timeout: float = 30,
    pool_recycle: int = 1800,
    busy_timeout_s: float = 5.0,
) -> Engine:
    """
    Build an engine for PostgreSQL or SQLite.

    Args:
        database_url: SQLAlchemy URL (postgresql+psycopg://... or sqlite://...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL).
        max_overflow: Connections beyond pool_size (PostgreSQL).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.
        busy_timeout_s: SQLite driver wait for the database lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    database_url = _driver_url(database_url)
    if database_url.startswith("sqlite"):
        if _is_memory_sqlite(database_url):
            engine = create_engine(
                database_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                pool_timeout=pool_timeout,
                connect_args={"timeout": busy_timeout_s, "check_same_thread": False},
            )
        event.listen(engine, "connect", _configure_sqlite_connection)
        event.listen(engine, "begin", _begin_sqlite_transaction)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    logger.info(
        "engine_initialized",
        extra={
            "dialect": engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return engine


def build_session_factory(
    engine: Engine,
    lock_timeout_ms: int | None = None,
    statement_timeout_ms: int | None = None,
) -> sessionmaker[Session]:
    """
    Create a session factory bound to ``engine``.

    On PostgreSQL, every transaction begun by a session from this factory
    first applies the given lock and statement timeouts (SET LOCAL, so
    they end with the transaction).
    """
    register_immutability_listeners()
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    if is_postgres(engine) and (lock_timeout_ms or statement_timeout_ms):

        @event.listens_for(factory, "after_begin")
        def _apply_timeouts(session, transaction, connection):
            apply_transaction_timeouts(connection, lock_timeout_ms, statement_timeout_ms)

    return factory


def apply_transaction_timeouts(connection, lock_timeout_ms, statement_timeout_ms) -> None:
    """Run SET LOCAL lock_timeout / statement_timeout on a PostgreSQL connection."""
    if lock_timeout_ms:
        connection.exec_driver_sql(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}")
    if statement_timeout_ms:
        connection.exec_driver_sql(
            f"SET LOCAL statement_timeout = {int(statement_timeout_ms)}"
        )


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
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
    session = factory()
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


def create_tables(engine: Engine, install_triggers: bool = True) -> None:
    """
    Create all tables and optionally install append-only triggers.

    Postconditions: All tables exist.  If install_triggers=True, UPDATE and
        DELETE on stock_master / stock_ledger are rejected by the database.
    """
    from stock_kernel.db.base import Base
    import stock_kernel.models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(engine)

    if install_triggers:
        from stock_kernel.db.triggers import install_append_only_triggers

        install_append_only_triggers(engine)


def drop_tables(engine: Engine) -> None:
    """
    Drop all tables. Use with caution - primarily for testing.
    """
    from stock_kernel.db.base import Base
    from stock_kernel.db.triggers import uninstall_append_only_triggers
    import stock_kernel.models  # noqa: F401

    uninstall_append_only_triggers(engine)
    Base.metadata.drop_all(engine)


def is_postgres(engine: Engine) -> bool:
    """Check if ``engine`` talks to PostgreSQL."""
    return engine.dialect.name == "postgresql"
