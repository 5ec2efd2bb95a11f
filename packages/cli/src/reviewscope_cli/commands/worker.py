"""worker command — feed a JSON-lines job file through the worker pool."""

from __future__ import annotations

import json
import logging

import click
from rich.console import Console

from reviewscope_core.gh.client import GitHubClient
from reviewscope_core.job import ReviewJob
from reviewscope_core.pipeline import run_review
from reviewscope_core.worker import Worker

console = Console()
logger = logging.getLogger(__name__)


def read_envelopes(lines) -> tuple[list[dict], int]:
    """Parse one envelope per non-blank line. Returns (envelopes, skipped)."""
    envelopes = []
    skipped = 0
    for number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        try:
            envelope = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Skipping line %d: invalid JSON (%s)", number, e)
            skipped += 1
            continue
        if not isinstance(envelope, dict) or "type" not in envelope:
            logger.warning("Skipping line %d: not a job envelope", number)
            skipped += 1
            continue
        envelopes.append(envelope)
    return envelopes, skipped


def make_review_handler(store, config: dict, token: str):
    """Build the handler for ``review`` envelopes. Each job gets its own GitHub client."""

    def handle(payload: dict) -> None:
        job = ReviewJob.from_dict(payload)
        client = GitHubClient.from_token(job.repository_full_name, token)
        outcome = run_review(job, store, client, config)
        console.print(f"{job.repository_full_name}#{job.pr_number}: [bold]{outcome.status}[/bold]")

    return handle


@click.command("worker")
@click.argument("jobs_file", type=click.File("r"))
@click.option("--workers", type=int, default=None, help="Number of concurrent slots. Overrides config file.")
@click.pass_context
def worker_cmd(ctx, jobs_file, workers: int | None):
    """Process review jobs from JOBS_FILE (use - for stdin).

    \b
    One JSON envelope per line:
      {"type": "review", "payload": {"installation_id": 1, "repository_id": 10,
       "repository_full_name": "owner/name", "pr_number": 7, "head_sha": "..."}}
    """
    config = ctx.obj["config"]
    store = ctx.obj["store"]

    token = config.get("github_token")
    if not token:
        raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")

    envelopes, skipped = read_envelopes(jobs_file)
    if not envelopes:
        console.print("[yellow]No jobs to process.[/yellow]")
        return

    slots = workers or config.get("workers", 4)
    worker = Worker({"review": make_review_handler(store, config, token)}, workers=slots)
    with worker:
        for envelope in envelopes:
            worker.submit(envelope)
        worker.join()

    console.print(
        f"[bold]Done:[/bold] {worker.processed} processed, {worker.failed} failed, "
        f"{skipped + len(envelopes) - worker.processed - worker.failed} skipped."
    )
    if worker.failed:
        ctx.exit(1)
