"""Create lead_generation_jobs table for durable job state.

Pollers look jobs up by primary key; the created_at index serves the
retention purge and the status index serves operational dashboards.
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "5b2e9c41d7a3"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)


def upgrade() -> None:
    op.create_table(
        "lead_generation_jobs",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("status_message", sa.Text(), nullable=False),
        sa.Column("input", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("cancel_requested", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("timezone('utc', now())")),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("timezone('utc', now())"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_lead_generation_jobs"),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'completed', 'failed')",
            name="ck_lead_generation_jobs_status",
        ),
    )
    op.create_index("idx_lead_gen_jobs_created", "lead_generation_jobs", ["created_at"], unique=False)
    op.create_index("idx_lead_gen_jobs_status", "lead_generation_jobs", ["status"], unique=False)
    logger.info("leadgen.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_index("idx_lead_gen_jobs_status", table_name="lead_generation_jobs")
    op.drop_index("idx_lead_gen_jobs_created", table_name="lead_generation_jobs")
    op.drop_table("lead_generation_jobs")
