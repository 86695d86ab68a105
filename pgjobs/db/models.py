"""
SQLAlchemy database models.
Defines the job queue table.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    Identity,
    Integer,
    PrimaryKeyConstraint,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pgjobs.constants import JOBS_TABLE


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class QueueJob(Base):
    """
    A unit of work waiting in the queue.

    The row exists from enqueue until a worker runs it successfully, at
    which point it is deleted. Failures only touch run_at, error_count and
    last_error.

    Key constraints:
    - (priority, run_at, job_id) is the primary key and the dequeue order
    - a row is eligible once run_at <= now()
    - workers claim a row by holding pg_try_advisory_lock(job_id) on their
      session, so exclusivity is enforced by PostgreSQL, not by row state
    """

    __tablename__ = JOBS_TABLE

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("1"),
    )
    run_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    job_id: Mapped[int] = mapped_column(
        BigInteger,
        Identity(always=False),
        nullable=False,
    )
    job_class: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    args: Mapped[list[Any]] = mapped_column(
        JSON,
        nullable=False,
        server_default=text("'[]'::json"),
    )
    error_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        PrimaryKeyConstraint("priority", "run_at", "job_id", name="queue_jobs_pkey"),
    )

    def __repr__(self) -> str:
        return (
            f"QueueJob(job_id={self.job_id}, class={self.job_class}, "
            f"priority={self.priority}, run_at={self.run_at}, errors={self.error_count})"
        )
