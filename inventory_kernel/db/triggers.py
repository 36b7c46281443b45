"""
Module: inventory_kernel.db.triggers
Responsibility: Installing and verifying the PostgreSQL triggers that make the
    ledger logs append-only at the database level.  Complements the ORM
    listeners in db/immutability.py, which only see writes made through the
    ORM.
Architecture position: Kernel > DB.  May import from db/ only.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any UPDATE/DELETE of a ledger log row
      (surfaces as InternalError/ProgrammingError through SQLAlchemy).
    - FileNotFoundError if the sql/ directory is missing.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

SQL_DIR = Path(__file__).parent / "sql"

TRIGGER_FILES = ["01_ledger_logs.sql"]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_inventory_transaction_immutability",
    "trg_stock_movement_immutability",
    "trg_reservation_entry_immutability",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def install_immutability_triggers(engine: Engine) -> None:
    """Install the append-only triggers. Idempotent (CREATE OR REPLACE)."""
    sql_content = "\n".join(_load_sql_file(name) for name in TRIGGER_FILES)
    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()


def get_missing_triggers(engine: Engine) -> list[str]:
    """Trigger names that should be installed but are not."""
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"SELECT tgname FROM pg_trigger WHERE tgname IN ({trigger_list})"
    with engine.connect() as conn:
        installed = {row[0] for row in conn.execute(text(check_sql))}
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
