"""
Command line interface.

    pgjobs work --workers 4
    pgjobs create | drop | clear
    pgjobs stats
    pgjobs api
"""

import asyncio
import json

import click

from pgjobs.db import clear_jobs, close_db, create_tables, drop_tables, get_engine
from pgjobs.db.repository import JobRepository
from pgjobs.observability.logging import setup_logging


@click.group(help="pgjobs: PostgreSQL-backed job queue")
def cli() -> None:
    pass


@cli.command("work", help="Process jobs using a worker pool")
@click.option("--workers", "-w", "worker_count", default=None, type=int,
              help="Number of concurrent workers [default: WORKER_COUNT or 4]")
@click.option("--wake-interval", default=None, type=float,
              help="Seconds an idle worker waits before polling again")
def work_cmd(worker_count: int | None, wake_interval: float | None) -> None:
    from pgjobs.worker.main import run

    run(worker_count=worker_count, wake_interval=wake_interval)


@cli.command("create", help="Create the job table")
def create_cmd() -> None:
    _run_with_engine(create_tables)
    click.echo("Created job table.")


@cli.command("drop", help="Drop the job table")
@click.confirmation_option(prompt="Drop the job table and every job in it?")
def drop_cmd() -> None:
    _run_with_engine(drop_tables)
    click.echo("Dropped job table.")


@cli.command("clear", help="Delete every job in the queue")
@click.confirmation_option(prompt="Delete every queued job?")
def clear_cmd() -> None:
    count = _run_with_engine(clear_jobs)
    click.echo(f"Deleted {count} jobs.")


@cli.command("stats", help="Show job counts per job class")
@click.option("--workers", "show_workers", is_flag=True, default=False,
              help="Show jobs currently being worked instead")
def stats_cmd(show_workers: bool) -> None:
    async def _stats(engine):
        async with engine.connect() as conn:
            repo = JobRepository(conn)
            if show_workers:
                return await repo.worker_states()
            return await repo.job_stats()

    rows = _run_with_engine(_stats)
    if not rows:
        click.echo("No jobs." if not show_workers else "No jobs are being worked.")
        return
    for row in rows:
        click.echo(json.dumps(row.model_dump(mode="json")))


@cli.command("api", help="Serve the read-only diagnostics API")
def api_cmd() -> None:
    from pgjobs.api.main import run

    run()


def _run_with_engine(func):
    async def _main():
        setup_logging()
        try:
            return await func(get_engine())
        finally:
            await close_db()

    return asyncio.run(_main())


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
