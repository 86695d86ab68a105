"""
pgjobs

A durable, priority-ordered background job queue on PostgreSQL. Workers claim
jobs with session-scoped advisory locks, so no job is ever run by two workers
at once, and failed jobs are retried with growing backoff.
"""

__version__ = "1.0.0"
