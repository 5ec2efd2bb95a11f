"""history command — list stored review runs."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_STATUS_STYLE = {
    "completed": "green",
    "processing": "yellow",
    "pending": "dim",
    "failed": "red",
}


@click.command("history")
@click.option("--repository-id", type=int, default=None, help="Only show reviews of this repository.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repository_id: int | None, limit: int):
    """Show the latest review of each pull request, most recent first."""
    store = ctx.obj["store"]

    reviews = store.list_reviews(repository_id)
    if not reviews:
        console.print("[yellow]No review records found.[/yellow]")
        return

    reviews = list(reversed(reviews))[:limit]

    table = Table(title="Review History", show_header=True, header_style="bold cyan")
    table.add_column("Repo", justify="right")
    table.add_column("PR", style="bold")
    table.add_column("Status")
    table.add_column("Comments", justify="right")
    table.add_column("Resolved", justify="right")
    table.add_column("Processed At")
    table.add_column("Note", max_width=40)

    for r in reviews:
        style = _STATUS_STYLE.get(r.status, "white")
        result = r.result or {}
        note = r.error or result.get("ai_skipped_reason") or result.get("limit") or ""
        table.add_row(
            str(r.repository_id),
            f"#{r.pr_number}",
            f"[{style}]{r.status}[/{style}]",
            str(len(result.get("comments", []))),
            str(len(result.get("resolved", []))),
            r.processed_at.strftime("%Y-%m-%d %H:%M:%S") if r.processed_at else "",
            note,
        )

    console.print(table)
