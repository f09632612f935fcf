"""call status events

Revision ID: 0001_call_status_events
Revises: 
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_call_status_events"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "call_status_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("call_sid", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_call_status_events_call_sid",
        "call_status_events",
        ["call_sid"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_call_status_events_call_sid", table_name="call_status_events")
    op.drop_table("call_status_events")
