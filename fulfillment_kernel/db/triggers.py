"""
Module: fulfillment_kernel.db.triggers
Responsibility: Loading, installing, and verifying PostgreSQL immutability
    triggers.  This is the database-level complement to the ORM-level
    listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced (via 4 PostgreSQL triggers across 2 SQL files):
    - Pool items: is_assigned never reverts; assignment fields, payload and
      ownership are frozen once assigned; assigned items are not deletable
      outside account erasure.
    - Delivered items: only is_revealed false -> true may change; rows are
      not deletable outside account erasure.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any trigger violation (surfaces as
      InternalError / DBAPIError through SQLAlchemy).
    - FileNotFoundError if SQL files are missing from the sql/ directory.

Audit relevance:
    The triggers still hold when the ORM is bypassed (raw SQL, bulk
    statements, direct psql access).  The allocation engine's guarded
    UPDATE is itself a Core statement, so on PostgreSQL it is the triggers,
    not the ORM listeners, that police it.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = [
    "01_pool_item.sql",
    "02_delivered_item.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_pool_item_guard_update",
    "trg_pool_item_guard_delete",
    "trg_delivered_item_guard_update",
    "trg_delivered_item_guard_delete",
]

# Session setting that lets account erasure past the delete guards.
ERASURE_SETTING = "fulfillment.erasure"


def _load_sql_file(filename: str) -> str:
    """Load SQL content from a file in the sql/ directory."""
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after create_all).  Engine must
        be connected to PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Functions use CREATE OR REPLACE and triggers are dropped first,
        so installation is idempotent.
    """
    # Driver-level execution: the plpgsql bodies contain % and :: literals
    with engine.connect() as conn:
        conn.exec_driver_sql(_load_all_trigger_sql())
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove the immutability triggers and their functions."""
    with engine.connect() as conn:
        conn.exec_driver_sql(_load_sql_file(DROP_FILE))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """List the immutability triggers currently present in pg_trigger."""
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """
    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(check_sql))]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return set(get_installed_triggers(engine)) == set(ALL_TRIGGER_NAMES)
