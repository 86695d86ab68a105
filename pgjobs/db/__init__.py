"""
Database module.
Contains database connection, models, schema helpers and the job repository.
"""

from pgjobs.db.connection import (
    checkout_connection,
    close_db,
    get_async_session,
    get_engine,
    init_db,
    make_session_factory,
)
from pgjobs.db.models import Base, QueueJob
from pgjobs.db.repository import JobRepository
from pgjobs.db.schema import clear_jobs, create_tables, drop_tables

__all__ = [
    "get_async_session",
    "get_engine",
    "init_db",
    "close_db",
    "checkout_connection",
    "make_session_factory",
    "QueueJob",
    "Base",
    "JobRepository",
    "create_tables",
    "drop_tables",
    "clear_jobs",
]
