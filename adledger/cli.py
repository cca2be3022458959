"""CLI tools for sync administration."""

from datetime import date, datetime

import click

from adledger.core.structured_logging import configure_logging
from adledger.db.enums import ChunkGranularity, JobStatus
from adledger.db.session import SessionLocal
from adledger.services import job_service, sync_request_service
from adledger.services.date_ranges import InvalidDateRangeError


def _parse_date(ctx, param, value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}")


@click.group()
def cli():
    """adledger CLI tools."""
    configure_logging()


@cli.command("enqueue-sync")
@click.argument("start", callback=_parse_date)
@click.argument("end", callback=_parse_date)
@click.option(
    "--granularity",
    type=click.Choice([g.value for g in ChunkGranularity]),
    default=None,
    help="Chunk size (defaults to SYNC_CHUNK_GRANULARITY)",
)
def enqueue_sync(start: date, end: date, granularity: str | None):
    """
    Queue a sync for START..END (inclusive).

    Example:
        adledger enqueue-sync 2024-01-01 2024-03-15 --granularity month
    """
    db = SessionLocal()
    try:
        queued = sync_request_service.request_sync(db, start, end, granularity=granularity)
    except InvalidDateRangeError as e:
        raise click.UsageError(str(e))
    finally:
        db.close()

    click.echo(f"✓ Queued {len(queued.chunks)} chunk job(s)")
    for chunk, job_id in zip(queued.chunks, queued.job_ids):
        click.echo(f"  {chunk.start.isoformat()}..{chunk.end.isoformat()}  {job_id}")


@cli.command()
@click.option("--drain", is_flag=True, help="Exit once no ready job is left")
def worker(drain: bool):
    """Run the background worker."""
    from adledger.worker import main

    main(drain=drain)


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@cli.command()
@click.option(
    "--status",
    type=click.Choice([s.value for s in JobStatus]),
    default=None,
    help="Only show jobs with this status",
)
@click.option("--limit", default=20, show_default=True, help="Maximum jobs to show")
def jobs(status: str | None, limit: int):
    """List recent jobs."""
    db = SessionLocal()
    try:
        rows = job_service.list_jobs(
            db, status=JobStatus(status) if status else None, limit=limit
        )
        if not rows:
            click.echo("No jobs found")
            return
        for job in rows:
            payload = job.payload or {}
            window = f"{payload.get('start_date', '?')}..{payload.get('end_date', '?')}"
            click.echo(
                f"{job.id}  {job.status:<9}  {job.job_type}  {window}  "
                f"attempts={job.attempts}/{job.max_attempts}  run_at={_fmt(job.run_at)}"
            )
            if job.last_error:
                click.echo(f"    last error: {job.last_error[:200]}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
