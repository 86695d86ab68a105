"""Initial schema with queue_jobs table

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "queue_jobs",
        sa.Column("priority", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "run_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "job_id",
            sa.BigInteger,
            sa.Identity(always=False),
            nullable=False,
        ),
        sa.Column("job_class", sa.Text, nullable=False),
        sa.Column(
            "args",
            postgresql.JSON,
            nullable=False,
            server_default=sa.text("'[]'::json"),
        ),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.PrimaryKeyConstraint("priority", "run_at", "job_id", name="queue_jobs_pkey"),
    )


def downgrade() -> None:
    op.drop_table("queue_jobs")
