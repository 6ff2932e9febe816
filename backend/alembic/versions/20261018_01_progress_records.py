"""Key/value table for learner progress state."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261018_01_progress_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "progress_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("namespace", sa.String(length=128), nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.UniqueConstraint("namespace", "key", name="uq_progress_records_namespace_key"),
    )
    op.create_index("ix_progress_records_namespace", "progress_records", ["namespace"])


def downgrade() -> None:
    op.drop_index("ix_progress_records_namespace", table_name="progress_records")
    op.drop_table("progress_records")
