"""threads command — show the comment threads of one pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from reviewscope_store.models import ThreadStatus

console = Console()


@click.command("threads")
@click.option("--repository-id", type=int, required=True, help="Repository the PR belongs to.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option(
    "--status",
    type=click.Choice([ThreadStatus.OPEN, ThreadStatus.RESOLVED, ThreadStatus.IGNORED]),
    default=None,
    help="Only show threads in this state.",
)
@click.pass_context
def threads_cmd(ctx, repository_id: int, pr_number: int, status: str | None):
    """List every finding ever reported on a pull request and whether it is still open."""
    store = ctx.obj["store"]

    review = store.get_review(repository_id, pr_number)
    if review is None:
        raise click.ClickException(f"No review found for repository {repository_id} PR #{pr_number}.")

    threads = store.list_threads(review.id, status)
    if not threads:
        console.print("[yellow]No comment threads found.[/yellow]")
        return

    table = Table(title=f"Threads — PR #{pr_number}", show_header=True, header_style="bold cyan")
    table.add_column("Key", width=16)
    table.add_column("File")
    table.add_column("Line", justify="right", width=6)
    table.add_column("Severity", width=9)
    table.add_column("Rule", width=22)
    table.add_column("Status", width=9)
    table.add_column("Resolved At", width=20)

    for t in threads:
        style = "green" if t.status == ThreadStatus.RESOLVED else "yellow"
        table.add_row(
            t.issue_key,
            t.file_path,
            str(t.line),
            t.severity,
            t.rule_id,
            f"[{style}]{t.status}[/{style}]",
            t.resolved_at.strftime("%Y-%m-%d %H:%M:%S") if t.resolved_at else "",
        )

    open_count = sum(1 for t in threads if t.status == ThreadStatus.OPEN)
    console.print(table)
    console.print(f"{open_count} open, {len(threads) - open_count} closed.")
