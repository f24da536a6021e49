"""Initial workflow schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

This migration:
1. Creates entities, audit_entries and escalation_requests
2. Adds the partial unique indexes that allow one applied entry per version
   and one pending escalation per proposed transition
3. Creates database triggers to enforce audit immutability (prevent UPDATE/DELETE)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the workflow tables."""

    op.create_table(
        "entities",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("domain_fields", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_entities_entity_type", "entities", ["entity_type"])
    op.create_index("ix_entities_status", "entities", ["status"])
    op.create_index("ix_entities_category", "entities", ["category"])
    op.create_index("ix_entities_created_at", "entities", ["created_at"])
    op.create_index("ix_entities_type_status", "entities", ["entity_type", "status"])

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_id", sa.Uuid(), sa.ForeignKey("entities.id"), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("from_status", sa.String(50), nullable=False),
        sa.Column("to_status", sa.String(50), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("requested_by_id", sa.String(64), nullable=True),
        sa.Column("escalation_id", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("resulting_version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_audit_entries_entity_id", "audit_entries", ["entity_id"])
    op.create_index("ix_audit_entries_entity_type", "audit_entries", ["entity_type"])
    op.create_index("ix_audit_entries_kind", "audit_entries", ["kind"])
    op.create_index("ix_audit_entries_action", "audit_entries", ["action"])
    op.create_index("ix_audit_entries_actor_id", "audit_entries", ["actor_id"])
    op.create_index("ix_audit_entries_escalation_id", "audit_entries", ["escalation_id"])
    op.create_index("ix_audit_entries_occurred_at", "audit_entries", ["occurred_at"])

    # One applied entry per entity version
    op.create_index(
        "uq_audit_entries_entity_version",
        "audit_entries",
        ["entity_id", "resulting_version"],
        unique=True,
        postgresql_where=sa.text("kind = 'applied'"),
        sqlite_where=sa.text("kind = 'applied'"),
    )

    op.create_table(
        "escalation_requests",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("entity_id", sa.Uuid(), sa.ForeignKey("entities.id"), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("from_status", sa.String(50), nullable=False),
        sa.Column("to_status", sa.String(50), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("requested_by_id", sa.String(64), nullable=False),
        sa.Column("requested_at", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("resolved_by_id", sa.String(64), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution_reason", sa.Text(), nullable=True),
    )
    op.create_index("ix_escalation_requests_entity_id", "escalation_requests", ["entity_id"])
    op.create_index("ix_escalation_requests_entity_type", "escalation_requests", ["entity_type"])
    op.create_index("ix_escalation_requests_requested_at", "escalation_requests", ["requested_at"])
    op.create_index("ix_escalation_requests_status", "escalation_requests", ["status"])

    # One pending request per proposed transition
    op.create_index(
        "uq_escalation_requests_pending",
        "escalation_requests",
        ["entity_id", "action", "from_status"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    if op.get_bind().dialect.name != "postgresql":
        return

    # Create trigger function to prevent updates and deletes
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_audit_entry_change()
        RETURNS TRIGGER AS $trigger$
        BEGIN
            RAISE EXCEPTION 'Audit entries are immutable. Record ID: %', OLD.id;
        END;
        $trigger$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER audit_entries_prevent_update
        BEFORE UPDATE ON audit_entries
        FOR EACH ROW
        EXECUTE FUNCTION prevent_audit_entry_change();
    """)

    op.execute("""
        CREATE TRIGGER audit_entries_prevent_delete
        BEFORE DELETE ON audit_entries
        FOR EACH ROW
        EXECUTE FUNCTION prevent_audit_entry_change();
    """)


def downgrade() -> None:
    """Drop the workflow tables."""

    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS audit_entries_prevent_update ON audit_entries;")
        op.execute("DROP TRIGGER IF EXISTS audit_entries_prevent_delete ON audit_entries;")
        op.execute("DROP FUNCTION IF EXISTS prevent_audit_entry_change();")

    op.drop_index("uq_escalation_requests_pending", table_name="escalation_requests")
    op.drop_table("escalation_requests")
    op.drop_index("uq_audit_entries_entity_version", table_name="audit_entries")
    op.drop_table("audit_entries")
    op.drop_table("entities")
