"""review command — run the review pipeline on one pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from reviewscope_core.exceptions import ReviewScopeError
from reviewscope_core.gh.client import GitHubClient
from reviewscope_core.job import ReviewJob
from reviewscope_core.pipeline import STATUS_FAILED, run_review
from reviewscope_store.models import Installation, Repository

console = Console()

_SEVERITY_STYLE = {"BLOCKER": "bold red", "CRITICAL": "red", "MAJOR": "yellow", "MINOR": "blue", "INFO": "dim"}


def ensure_tenant(store, installation_id: int, repository_id: int, full_name: str, plan_id: int | None) -> None:
    """Register the installation and repository for a local run if the store has never seen them."""
    installation = store.get_installation(installation_id)
    if installation is None:
        store.save_installation(Installation(installation_id=installation_id, plan_id=plan_id))
    elif plan_id is not None and installation.plan_id != plan_id:
        installation.plan_id = plan_id
        store.save_installation(installation)

    if store.get_repository(repository_id) is None:
        store.save_repository(
            Repository(repository_id=repository_id, installation_id=installation_id, full_name=full_name)
        )


def _print_comments(comments: list[dict]) -> None:
    if not comments:
        console.print("[green]No new findings.[/green]")
        return
    table = Table(title="Findings", show_header=True, header_style="bold cyan")
    table.add_column("Severity", width=9)
    table.add_column("File")
    table.add_column("Line", justify="right", width=6)
    table.add_column("Rule", width=20)
    table.add_column("Message")
    for c in comments:
        style = _SEVERITY_STYLE.get(c["severity"], "white")
        table.add_row(
            f"[{style}]{c['severity']}[/{style}]",
            c["file"],
            str(c["line"]),
            c["rule_id"],
            c["message"],
        )
    console.print(table)


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option("--installation-id", type=int, default=1, show_default=True, help="Installation to run under.")
@click.option("--plan-id", type=int, default=None, help="Plan of the installation (7 = Pro, 8 = Team).")
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print findings without posting to GitHub.",
)
@click.option("--include-draft", is_flag=True, help="Review the PR even if it is a draft.")
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    installation_id: int,
    plan_id: int | None,
    shadow: bool,
    include_draft: bool,
):
    """Review a GitHub pull request.

    Runs the static rules and, when an LLM key is usable, the routed AI
    review, then posts only findings not already reported on the PR.

    \b
    Environment variables:
      GITHUB_TOKEN         GitHub token (or an authenticated gh CLI)
      ANTHROPIC_API_KEY    Server key for Anthropic models
      OPENAI_API_KEY       Server key for OpenAI models
    """
    config = dict(ctx.obj["config"])
    store = ctx.obj["store"]

    token = config.get("github_token")
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    client = GitHubClient.from_token(repo, token)

    if pr_number is None:
        pulls = client.list_open_pulls()
        if not pulls:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in pulls:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    info = client.get_pull_info(pr_number)
    if info.draft and not include_draft:
        console.print(f"[yellow]#{pr_number} is a draft. Pass --include-draft to review it anyway.[/yellow]")
        return

    repository_id = client.repo.id
    ensure_tenant(store, installation_id, repository_id, repo, plan_id)

    if shadow:
        config["post_comments"] = False

    job = ReviewJob(
        installation_id=installation_id,
        repository_id=repository_id,
        repository_full_name=repo,
        pr_number=pr_number,
        head_sha=info.head_sha,
        base_sha=info.base_sha,
        pr_title=info.title,
        pr_body=info.body,
    )

    try:
        outcome = run_review(job, store, client, config)
    except ReviewScopeError as e:
        raise click.ClickException(str(e))

    if outcome.status == STATUS_FAILED:
        raise click.ClickException(outcome.error or "Review failed.")

    if shadow:
        review = store.get_review(repository_id, pr_number)
        console.print(Markdown(outcome.summary))
        _print_comments(review.result.get("comments", []) if review else [])
    else:
        console.print(
            f"[bold]{outcome.status}[/bold]: {len(outcome.posted)} posted, "
            f"{outcome.suppressed} already reported, {outcome.resolved} resolved."
        )
