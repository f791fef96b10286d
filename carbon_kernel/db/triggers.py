"""
Module: carbon_kernel.db.triggers
Responsibility: Loading, installing, and verifying PostgreSQL immutability
    triggers (Layer 2 of 2).  This is the database-level complement to the
    ORM-level listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only (pathlib for
    SQL file loading, sqlalchemy for execution).  MUST NOT import from
    models/, services/, selectors/, domain/, or outer layers.

Invariants enforced (via PostgreSQL triggers across 5 SQL files):
    - transactions: no UPDATE, no DELETE.
    - retirement_certificates, certificate_corrections: no UPDATE, no DELETE.
    - audit_events: no UPDATE, no DELETE.
    - projects: no DELETE; available_credits never increases; total_credits
      is fixed once issued.
    - wallets: no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any trigger violation (surfaced by
      SQLAlchemy as InternalError / IntegrityError).
    - FileNotFoundError if SQL files are missing from the sql/ directory.
    - OperationalError on deadlock during installation (caller retries).

Audit relevance:
    Even if the ORM layer is bypassed (raw SQL, bulk operations, direct
    psql access), the database refuses to rewrite transactions,
    certificates, or the audit chain.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

# Directory containing SQL trigger files
SQL_DIR = Path(__file__).parent / "sql"

# Ordered list of trigger files to install (numbered for predictable order)
TRIGGER_FILES = [
    "01_append_only.sql",
    "02_transactions.sql",
    "03_certificates.sql",
    "04_audit_event.sql",
    "05_ledger_rows.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    # Transactions (02)
    "trg_transactions_immutability_update",
    "trg_transactions_immutability_delete",
    # Certificates (03)
    "trg_retirement_certificate_immutability_update",
    "trg_retirement_certificate_immutability_delete",
    "trg_certificate_correction_immutability_update",
    "trg_certificate_correction_immutability_delete",
    # Audit Event (04)
    "trg_audit_event_immutability_update",
    "trg_audit_event_immutability_delete",
    # Wallets and projects (05)
    "trg_project_pool_guard",
    "trg_project_no_delete",
    "trg_wallet_no_delete",
]


def _load_sql_file(filename: str) -> str:
    """
    Load SQL content from a file in the sql/ directory.

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    filepath = SQL_DIR / filename
    return filepath.read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    """Load and concatenate all trigger SQL files in numbered order."""
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after create_all()).
        Engine must be connected to PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Trigger functions use CREATE OR REPLACE and triggers are dropped
        before creation, so installation is idempotent.
    """
    sql_content = _load_all_trigger_sql()

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only for test teardown and schema migrations.  Re-install
    immediately afterwards.
    """
    sql_content = _load_sql_file(DROP_FILE)

    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Get list of installed immutability triggers."""
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """

    with engine.connect() as conn:
        result = conn.execute(text(check_sql))
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """Check if all immutability triggers are installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)


def get_missing_triggers(engine: Engine) -> list[str]:
    """Get list of immutability triggers that should be installed but aren't."""
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
