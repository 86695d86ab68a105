"""
Job-related type definitions for internal use.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from pgjobs.errors import InvalidJobArgsError


def load_json(raw: Any) -> Any:
    """
    Parse a JSON column value.

    The driver may hand back either decoded JSON or the raw JSON text,
    depending on how the column was selected.
    """
    if raw is None:
        return []
    if isinstance(raw, (str, bytes, bytearray)):
        return json.loads(raw)
    return raw


def decode_args(raw: Any) -> list[Any]:
    """
    Decode a stored args payload into a positional argument list.

    Args:
        raw: The args column value.

    Returns:
        The positional arguments as a list.

    Raises:
        InvalidJobArgsError: If the payload is not a JSON array.
    """
    args = load_json(raw)
    if not isinstance(args, list):
        raise InvalidJobArgsError(
            f"Job args must be a JSON array, got {type(args).__name__}: {args!r}"
        )
    return args


@dataclass
class JobRecord:
    """
    A row of the job table as seen by producers and workers.

    (priority, run_at, job_id) is both the primary key and the dequeue order.
    job_id and run_at are None only for inline jobs that were never persisted.
    """

    job_class: str
    args: Any = field(default_factory=list)
    priority: int = 1
    run_at: datetime | None = None
    job_id: int | None = None
    error_count: int = 0
    last_error: str | None = None

    @property
    def key(self) -> tuple[int, datetime | None, int | None]:
        """The ordering key / primary key of the record."""
        return (self.priority, self.run_at, self.job_id)

    @property
    def is_persisted(self) -> bool:
        """Whether the record was assigned an id by the store."""
        return self.job_id is not None

    @classmethod
    def from_row(cls, row: Any) -> "JobRecord":
        """
        Build a record from a result row.

        Columns not selected by the query (last_error for the lock query)
        fall back to their defaults. args are parsed but not validated;
        a malformed payload fails when the job is built.
        """
        mapping = row._mapping if hasattr(row, "_mapping") else row
        return cls(
            job_class=mapping["job_class"],
            args=load_json(mapping.get("args")),
            priority=mapping["priority"],
            run_at=mapping["run_at"],
            job_id=mapping["job_id"],
            error_count=mapping.get("error_count") or 0,
            last_error=mapping.get("last_error"),
        )


class JobStats(BaseModel):
    """
    Per job_class summary of the queue.
    Used by operators through the CLI and the diagnostics API.
    """

    job_class: str
    count: int
    count_working: int
    count_errored: int
    highest_error_count: int
    oldest_run_at: datetime


class WorkerState(BaseModel):
    """
    A job currently locked by a worker, joined with that worker's backend state.
    """

    priority: int
    run_at: datetime
    job_id: int
    job_class: str
    args: Any
    error_count: int
    last_error: str | None = None
    pg_backend_pid: int
    pg_state: str | None = None
    pg_state_changed_at: datetime | None = None
    pg_last_query: str | None = None
    pg_last_query_started_at: datetime | None = None
    pg_transaction_started_at: datetime | None = None
    pg_waiting_on_lock: bool = False
