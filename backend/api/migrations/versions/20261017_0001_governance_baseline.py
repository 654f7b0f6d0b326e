"""Governance baseline: journeys, trusted circle, contributions, steward grants,
audit ledger and inbound messages.

The ledger is append-only at the database level as well: UPDATE and DELETE on
audit_entries are rejected by triggers (SQLite) or a trigger function
(PostgreSQL).

Idempotent (CREATE ... IF NOT EXISTS).
"""

from __future__ import annotations

from alembic import op

from archive_api.schema import ddl_statements

revision = "20261017_0001_governance_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    for stmt in ddl_statements(op.get_bind().dialect.name):
        op.execute(stmt)


def downgrade() -> None:
    dialect = op.get_bind().dialect.name
    if dialect == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS audit_entries_no_change ON audit_entries;")
        op.execute("DROP FUNCTION IF EXISTS audit_entries_immutable();")
    for table in (
        "inbound_messages",
        "audit_entries",
        "steward_grants",
        "contribution_items",
        "journey_viewers",
        "journeys",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table};")
