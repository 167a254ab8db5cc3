"""CLI entry-point: enqueue generation jobs, inspect them, run the worker."""

import json

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from examgen.config import Settings, get_settings
from examgen.jobs.store import get_job_store
from examgen.schemas.models import DirectKnowledgePayload, FromSourceDocumentPayload, new_job_id
from examgen.service import ALL_KINDS_ALIAS, JobService
from examgen.store import get_catalog
from examgen.worker.handler import JobDataError, build_handler
from examgen.worker.queue import InlineJobQueue, RQJobQueue

app = typer.Typer(help="Asynchronous exam question generation")


def _service(settings: Settings, inline: bool) -> JobService:
    job_store = get_job_store(settings)
    if inline:
        queue = InlineJobQueue(build_handler(settings), job_store=job_store)
    else:
        queue = RQJobQueue(settings)
    return JobService(job_store, get_catalog(settings), queue, settings.active_jobs_limit)


def _submit(console: Console, settings: Settings, payload, inline: bool) -> None:
    service = _service(settings, inline)
    try:
        job_id = service.enqueue(payload)
    except JobDataError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Error: job {payload.job_id} did not run: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"Job [bold]{job_id}[/bold] {'processed' if inline else 'queued'}")
    if inline:
        _print_status(console, service, job_id)


def _print_status(console: Console, service: JobService, job_id: str) -> None:
    view = service.get_job_status(job_id)
    if view is None:
        console.print(f"[red]Error: job not found: {job_id}[/red]")
        raise typer.Exit(1)
    console.print_json(json.dumps(view.model_dump(mode="json")))


@app.command("enqueue-direct")
def enqueue_direct(
    subject_id: str = typer.Option(..., "--subject", help="Subject id"),
    exam_id: str = typer.Option(..., "--exam", help="Exam id"),
    num_questions: int = typer.Option(..., "--count", min=1, help="Number of questions to generate"),
    topic: str = typer.Option(None, help="Optional topic to focus on"),
    user_id: str = typer.Option("cli", "--user", help="Creator recorded on generated questions"),
    job_id: str = typer.Option(None, "--job-id", help="Job id (default: generated)"),
    inline: bool = typer.Option(False, "--inline", help="Run in this process instead of queueing to Redis"),
):
    """Generate questions from the model's own knowledge of the subject."""
    console = Console()
    settings = get_settings()
    try:
        payload = DirectKnowledgePayload(
            job_id=job_id or new_job_id(),
            user_id=user_id,
            subject_id=subject_id,
            exam_id=exam_id,
            num_questions=num_questions,
            topic=topic,
        )
    except ValidationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    _submit(console, settings, payload, inline)


@app.command("enqueue-document")
def enqueue_document(
    document_url: str = typer.Argument(..., help="URL or local path of the source document (PDF or text)"),
    subject_id: str = typer.Option(..., "--subject", help="Subject id"),
    exam_id: str = typer.Option(..., "--exam", help="Exam id"),
    num_questions: int = typer.Option(..., "--count", min=1, help="Number of questions to generate"),
    document_id: str = typer.Option(None, "--document-id", help="Document id (default: the URL)"),
    user_id: str = typer.Option("cli", "--user", help="Creator recorded on generated questions"),
    job_id: str = typer.Option(None, "--job-id", help="Job id (default: generated)"),
    inline: bool = typer.Option(False, "--inline", help="Run in this process instead of queueing to Redis"),
):
    """Generate questions from a source document's (cached) summary."""
    console = Console()
    settings = get_settings()
    try:
        payload = FromSourceDocumentPayload(
            job_id=job_id or new_job_id(),
            user_id=user_id,
            subject_id=subject_id,
            exam_id=exam_id,
            num_questions=num_questions,
            document_id=document_id or document_url,
            document_url=document_url,
        )
    except ValidationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    _submit(console, settings, payload, inline)


@app.command()
def status(job_id: str = typer.Argument(..., help="Job id")):
    """Show one job's status, progress and elapsed time."""
    console = Console()
    settings = get_settings()
    service = JobService(get_job_store(settings), get_catalog(settings), active_jobs_limit=settings.active_jobs_limit)
    _print_status(console, service, job_id)


@app.command()
def jobs(
    kind: str = typer.Option(ALL_KINDS_ALIAS, help="Job kind, or question-generation for all"),
    status: list[str] = typer.Option(default=[], help="Statuses to include (default: queued, running, partial)"),
):
    """List recently updated jobs, newest first."""
    console = Console()
    settings = get_settings()
    service = JobService(get_job_store(settings), get_catalog(settings), active_jobs_limit=settings.active_jobs_limit)
    try:
        views = service.list_active_jobs(type_filter=kind, status_filter=status or None)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not views:
        console.print("No matching jobs.")
        return
    table = Table("Job", "Kind", "Subject", "Exam", "Status", "Progress", "Elapsed", "Updated")
    for v in views:
        table.add_row(
            v.job_id,
            v.kind.value,
            v.subject_name or v.subject_id,
            v.exam_name or v.exam_id,
            v.status.value,
            f"{v.generated_questions}/{v.requested_questions}",
            v.elapsed or "-",
            v.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


@app.command()
def worker(
    burst: bool = typer.Option(False, "--burst", help="Exit once the queue is empty"),
):
    """Consume the question generation queue."""
    from examgen.worker.runner import start_worker

    start_worker(get_settings(), burst=burst)


if __name__ == "__main__":
    app()
