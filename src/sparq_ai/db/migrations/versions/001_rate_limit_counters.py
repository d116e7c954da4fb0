"""Create rate_limit_counters table.

Revision ID: 001_rate_limit_counters
Revises:
Create Date: 2026-10-19 00:00:00.000000

Fixed-window request counters used when the distributed cache is not
configured. One row per caller key and window start.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_rate_limit_counters"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the counter table and its cleanup index."""
    op.create_table(
        "rate_limit_counters",
        sa.Column("key", sa.String(512), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("key", "window_start"),
    )
    # Expired windows are deleted by age
    op.create_index(
        "ix_rate_limit_counters_window_start",
        "rate_limit_counters",
        ["window_start"],
    )


def downgrade() -> None:
    """Drop the counter table."""
    op.drop_index("ix_rate_limit_counters_window_start", table_name="rate_limit_counters")
    op.drop_table("rate_limit_counters")
