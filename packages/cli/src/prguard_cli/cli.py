"""CLI entry point for prguard.

Commands:
  serve    run the webhook server
  analyze  analyse one pull request from the terminal
  history  display past analyses from the configured store
  health   product health from the latest stored analysis of a PR
"""

from __future__ import annotations

import importlib.metadata

import click
from rich.console import Console

from prguard_cli.commands.analyze import analyze_cmd
from prguard_cli.commands.health import health_cmd
from prguard_cli.commands.history import history_cmd
from prguard_cli.commands.serve import serve_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .prguard.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .prguard.db)
      (default)     → NoOpStore  (analyses not persisted)

    This factory lives in cli.py so neither prguard_core nor prguard_store
    know about the config format.
    """
    from prguard_store.noop import NoOpStore

    store_type = config.get("store", "noop")

    if store_type == "sqlite":
        from prguard_store.sqlite import SQLiteStore

        db_path = config.get("store_path") or ".prguard.db"
        return SQLiteStore(db_path=db_path)

    if store_type != "noop":
        console.print(f"[yellow]Unknown store {store_type!r}. Falling back to no store.[/yellow]")
    return NoOpStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("prguard"),
    prog_name="prguard",
)
@click.option(
    "--config",
    "config_path",
    default=".prguard.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRGUARD_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors.")
@click.option("--log-file", default=None, help="Also append logs to this file.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool, quiet: bool, log_file: str | None):
    """Risk analysis and test automation for GitHub pull requests."""
    from prguard_cli.auth import apply_credentials
    from prguard_cli.logging_config import setup_logging
    from prguard_core.config import load_config
    from prguard_core.errors import ConfigError

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    ctx.obj["auth"] = apply_credentials(config)

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(serve_cmd)
main.add_command(analyze_cmd)
main.add_command(history_cmd)
main.add_command(health_cmd)
