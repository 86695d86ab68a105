"""
Exception types and error classification.
"""

from sqlalchemy.exc import DBAPIError, DisconnectionError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class PgJobsError(Exception):
    """Base class for errors raised by pgjobs."""


class UnknownJobTypeError(PgJobsError):
    """Raised when a stored job_class has no registered job type."""

    def __init__(self, job_class: str):
        self.job_class = job_class
        super().__init__(f"No job type registered for job_class: {job_class!r}")


class StoreNotConfiguredError(PgJobsError):
    """Raised when a persistent operation is attempted without a database engine."""


class InvalidJobArgsError(PgJobsError, TypeError):
    """Raised when a stored args payload is not a JSON array."""


# Raised by the database driver or the connection pool. OS-level
# ConnectionError is left out: a handler's own network failures are job errors.
_STORE_ERRORS = (DBAPIError, DisconnectionError, PoolTimeoutError)


def is_store_error(error: BaseException) -> bool:
    """
    Check whether an error came from the database or its connection.

    Store errors tell the worker loop to back off before polling again.
    Anything else is an ordinary job error, and the loop may look for more
    work right away.

    Args:
        error: The exception raised during a work pass.

    Returns:
        True for database or pool errors, False otherwise.
    """
    return isinstance(error, _STORE_ERRORS)
