"""Create meetings table

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op

# --- Alembic identifiers ---
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    # Be idempotent: dev databases may already have the table from create_all()
    if insp.has_table("meetings"):
        return

    op.create_table(
        "meetings",
        sa.Column("id", sa.String(length=32), primary_key=True, nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("date", sa.String(length=32), nullable=False),
        sa.Column("location", sa.Text(), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("participants", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_meetings_date", "meetings", ["date"])
    op.create_index("ix_meetings_created_by", "meetings", ["created_by"])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if insp.has_table("meetings"):
        op.drop_index("ix_meetings_created_by", table_name="meetings")
        op.drop_index("ix_meetings_date", table_name="meetings")
        op.drop_table("meetings")
