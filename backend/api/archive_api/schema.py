# backend/api/archive_api/schema.py
"""
Table definitions shared by the Alembic baseline and create_schema().

Portable between SQLite (local/tests) and PostgreSQL:
- ids are generated in Python (uuid4 hex strings)
- timestamps are ISO-8601 UTC strings from archive_api.clock
- JSON columns are stored as text (json.dumps with sorted keys)
"""
from __future__ import annotations


TABLES: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS journeys (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        kind TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS journey_viewers (
        journey_id TEXT NOT NULL REFERENCES journeys(id),
        user_id TEXT NOT NULL,
        tier TEXT NOT NULL,
        can_preview INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        PRIMARY KEY (journey_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contribution_items (
        id TEXT PRIMARY KEY,
        journey_id TEXT NOT NULL REFERENCES journeys(id),
        type TEXT NOT NULL,
        status TEXT NOT NULL,
        visibility TEXT NOT NULL,
        payload TEXT NOT NULL,
        attribution TEXT NOT NULL,
        credit_line TEXT,
        rights_status TEXT,
        provenance_note TEXT,
        created_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        reviewed_by TEXT,
        reviewed_at TEXT,
        rejection_note TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_items_journey_status ON contribution_items (journey_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_items_created_by ON contribution_items (created_by)",
    """
    CREATE TABLE IF NOT EXISTS steward_grants (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        scope TEXT NOT NULL,
        journey_id TEXT,
        created_at TEXT NOT NULL,
        created_by TEXT NOT NULL,
        revoked_at TEXT,
        revoked_by TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_grants_user ON steward_grants (user_id, revoked_at)",
    """
    CREATE TABLE IF NOT EXISTS audit_entries (
        id TEXT PRIMARY KEY,
        target_kind TEXT NOT NULL,
        target_id TEXT NOT NULL,
        journey_id TEXT,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL,
        before_snapshot TEXT,
        after_snapshot TEXT,
        note TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_journey ON audit_entries (journey_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_audit_target ON audit_entries (target_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS inbound_messages (
        id TEXT PRIMARY KEY,
        kind TEXT NOT NULL,
        sender_id TEXT,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        body TEXT NOT NULL,
        journey_id TEXT,
        created_at TEXT NOT NULL
    )
    """,
]


# The ledger is append-only at the storage level too.
_SQLITE_GUARDS: list[str] = [
    """
    CREATE TRIGGER IF NOT EXISTS audit_entries_no_update
    BEFORE UPDATE ON audit_entries
    BEGIN
        SELECT RAISE(ABORT, 'audit entries are immutable');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS audit_entries_no_delete
    BEFORE DELETE ON audit_entries
    BEGIN
        SELECT RAISE(ABORT, 'audit entries are immutable');
    END
    """,
]

_POSTGRES_GUARDS: list[str] = [
    """
    CREATE OR REPLACE FUNCTION audit_entries_immutable() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'audit entries are immutable';
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS audit_entries_no_change ON audit_entries",
    """
    CREATE TRIGGER audit_entries_no_change
    BEFORE UPDATE OR DELETE ON audit_entries
    FOR EACH ROW EXECUTE FUNCTION audit_entries_immutable()
    """,
]


def ddl_statements(dialect_name: str) -> list[str]:
    stmts = list(TABLES)
    if dialect_name == "sqlite":
        stmts.extend(_SQLITE_GUARDS)
    elif dialect_name == "postgresql":
        stmts.extend(_POSTGRES_GUARDS)
    return stmts
