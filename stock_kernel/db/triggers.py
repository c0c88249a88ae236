"""
Module: stock_kernel.db.triggers
Responsibility: Installing and removing database-level append-only triggers
    (Layer 2 of 2).  The complement to the ORM listeners in
    db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - stock_ledger rows: no UPDATE, no DELETE.
    - stock_master rows: no UPDATE, no DELETE.

Failure modes:
    - A blocked statement fails with an integrity error raised by the
      database (PostgreSQL RAISE ... restrict_violation, SQLite
      RAISE(ABORT)).  TRUNCATE is not a row operation and is not blocked.
    - ValueError for a dialect without trigger definitions.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

from stock_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

APPEND_ONLY_TABLES = ("stock_ledger", "stock_master")

_PG_GUARD_FUNCTION = """
CREATE OR REPLACE FUNCTION stock_append_only_guard() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'table % is append-only: % not permitted', TG_TABLE_NAME, TG_OP
        USING ERRCODE = 'restrict_violation';
END;
$$ LANGUAGE plpgsql
"""


def _postgres_install(table: str) -> list[str]:
    return [
        f"DROP TRIGGER IF EXISTS trg_{table}_append_only ON {table}",
        f"CREATE TRIGGER trg_{table}_append_only BEFORE UPDATE OR DELETE ON {table} "
        "FOR EACH ROW EXECUTE FUNCTION stock_append_only_guard()",
    ]


def _sqlite_install(table: str) -> list[str]:
    return [
        f"CREATE TRIGGER IF NOT EXISTS trg_{table}_no_update BEFORE UPDATE ON {table} "
        f"BEGIN SELECT RAISE(ABORT, 'table {table} is append-only: UPDATE not permitted'); END",
        f"CREATE TRIGGER IF NOT EXISTS trg_{table}_no_delete BEFORE DELETE ON {table} "
        f"BEGIN SELECT RAISE(ABORT, 'table {table} is append-only: DELETE not permitted'); END",
    ]


def install_append_only_triggers(engine: Engine) -> None:
    """
    Install append-only triggers on every protected table.

    Preconditions: Tables exist (create_tables() ran first).
    Postconditions: UPDATE/DELETE on protected tables fails at the database.
    """
    dialect = engine.dialect.name
    statements: list[str] = []
    if dialect == "postgresql":
        statements.append(_PG_GUARD_FUNCTION)
        for table in APPEND_ONLY_TABLES:
            statements.extend(_postgres_install(table))
    elif dialect == "sqlite":
        for table in APPEND_ONLY_TABLES:
            statements.extend(_sqlite_install(table))
    else:
        raise ValueError(f"No append-only trigger definitions for dialect {dialect}")

    with engine.begin() as conn:
        for statement in statements:
            conn.exec_driver_sql(statement)

    logger.info(
        "append_only_triggers_installed",
        extra={"dialect": dialect, "tables": list(APPEND_ONLY_TABLES)},
    )


def uninstall_append_only_triggers(engine: Engine) -> None:
    """Drop the append-only triggers.  Used before dropping tables in tests."""
    dialect = engine.dialect.name
    with engine.begin() as conn:
        for table in APPEND_ONLY_TABLES:
            if dialect == "postgresql":
                conn.execute(text(f"DROP TRIGGER IF EXISTS trg_{table}_append_only ON {table}"))
            elif dialect == "sqlite":
                conn.execute(text(f"DROP TRIGGER IF EXISTS trg_{table}_no_update"))
                conn.execute(text(f"DROP TRIGGER IF EXISTS trg_{table}_no_delete"))
