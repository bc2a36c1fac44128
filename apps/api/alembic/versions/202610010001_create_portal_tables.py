"""create portal tables

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "portal_lead",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="warm"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("phone", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_contacted", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_portal_lead_owner_status_created",
        "portal_lead",
        ["owner_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "portal_appointment",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("lead_id", sa.String(length=36), nullable=False),
        sa.Column("outcome", sa.String(length=32), nullable=False, server_default="scheduled"),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("time", sa.String(length=5), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_portal_appointment_owner_outcome_date",
        "portal_appointment",
        ["owner_id", "outcome", "date"],
        unique=False,
    )

    op.create_table(
        "portal_proposal",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("file_ref", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_portal_proposal_owner_status_created",
        "portal_proposal",
        ["owner_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "portal_support_ticket",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="open"),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
        sa.Column("replies", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_portal_support_ticket_owner_status_created",
        "portal_support_ticket",
        ["owner_id", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "portal_client_profile",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("plan", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("start_date", sa.String(length=10), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("portal_client_profile")
    op.drop_index("ix_portal_support_ticket_owner_status_created", table_name="portal_support_ticket")
    op.drop_table("portal_support_ticket")
    op.drop_index("ix_portal_proposal_owner_status_created", table_name="portal_proposal")
    op.drop_table("portal_proposal")
    op.drop_index("ix_portal_appointment_owner_outcome_date", table_name="portal_appointment")
    op.drop_table("portal_appointment")
    op.drop_index("ix_portal_lead_owner_status_created", table_name="portal_lead")
    op.drop_table("portal_lead")
