"""CLI entry point for reviewscope.

Commands:
  review   — run the review pipeline on one pull request
  worker   — consume a JSON-lines job file through the worker pool
  history  — list stored review runs
  threads  — show the comment threads of one pull request
  stats    — aggregate findings across stored reviews
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from reviewscope_cli.commands.history import history_cmd
from reviewscope_cli.commands.review import review_cmd
from reviewscope_cli.commands.stats import stats_cmd
from reviewscope_cli.commands.threads import threads_cmd
from reviewscope_cli.commands.worker import worker_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store.

      store: memory → MemoryStore (nothing survives the process)
      (default)     → SQLiteStore at store_path
    """
    if config.get("store") == "memory":
        from reviewscope_store.memory import MemoryStore

        return MemoryStore()

    from reviewscope_store.sqlite import SQLiteStore

    return SQLiteStore(db_path=config.get("store_path", ".reviewscope.db"))


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("reviewscope"),
    prog_name="reviewscope",
)
@click.option(
    "--config",
    "config_path",
    default=".reviewscope.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="REVIEWSCOPE_CONFIG",
)
@click.option("--store-path", default=None, help="SQLite database path. Overrides config file.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, store_path: str | None, verbose: bool):
    """Automated pull-request reviewer: static rules, routed LLM review, tracked threads."""
    from reviewscope_cli.auth import resolve_github_token
    from reviewscope_core.config import load_config

    _setup_logging(verbose)
    ctx.ensure_object(dict)

    config = load_config(config_path, cli_overrides={"store_path": store_path})

    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(worker_cmd)
main.add_command(history_cmd)
main.add_command(threads_cmd)
main.add_command(stats_cmd)
