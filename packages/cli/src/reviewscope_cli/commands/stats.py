"""stats command — aggregate findings across stored reviews."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from reviewscope_core.findings import SEVERITIES
from reviewscope_store.models import ThreadStatus

console = Console()

_SEVERITY_STYLE = {"BLOCKER": "bold red", "CRITICAL": "red", "MAJOR": "yellow", "MINOR": "blue", "INFO": "dim"}


@click.command("stats")
@click.option("--repository-id", type=int, default=None, help="Only count reviews of this repository.")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, repository_id: int | None, top: int):
    """Show aggregated review statistics.

    Reports the severity distribution of reported findings, the rules and
    files that trigger most often, and how many threads were resolved by
    later pushes.
    """
    store = ctx.obj["store"]

    reviews = store.list_reviews(repository_id)
    if not reviews:
        console.print("[yellow]No review records found.[/yellow]")
        return

    status_counter: Counter[str] = Counter(r.status for r in reviews)
    severity_counter: Counter[str] = Counter()
    rule_counter: Counter[str] = Counter()
    file_counter: Counter[str] = Counter()
    open_threads = resolved_threads = 0

    for review in reviews:
        threads = store.list_threads(review.id)
        for t in threads:
            severity_counter[t.severity] += 1
            rule_counter[t.rule_id] += 1
            file_counter[t.file_path] += 1
        open_threads += sum(1 for t in threads if t.status == ThreadStatus.OPEN)
        resolved_threads += sum(1 for t in threads if t.status == ThreadStatus.RESOLVED)

    total_findings = sum(severity_counter.values())

    # --- Summary ---
    console.print("\n[bold]Review stats[/bold]")
    console.print(f"  Pull requests:   {len(reviews)}")
    for status, count in sorted(status_counter.items()):
        console.print(f"    {status}: {count}")
    console.print(f"  Findings:        {total_findings}")
    console.print(f"  Open threads:    {open_threads}")
    console.print(f"  Resolved:        {resolved_threads}")

    # --- Severity breakdown ---
    if severity_counter:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        for sev in SEVERITIES:
            count = severity_counter.get(sev, 0)
            pct = f"{count / total_findings * 100:.1f}%"
            style = _SEVERITY_STYLE.get(sev, "white")
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), pct)
        console.print(sev_table)

    # --- Most triggered rules ---
    if rule_counter:
        rule_table = Table(title=f"Top {top} Rules", show_header=True)
        rule_table.add_column("Rule")
        rule_table.add_column("Findings", justify="right")
        for rule_id, count in rule_counter.most_common(top):
            rule_table.add_row(rule_id, str(count))
        console.print(rule_table)

    # --- Most flagged files ---
    if file_counter:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Findings", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(file_path, str(count))
        console.print(file_table)
