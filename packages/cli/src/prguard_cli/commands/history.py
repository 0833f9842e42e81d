"""history command: display past analyses from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prguard_cli.context import get_store

console = Console()

_MERGE_STYLE = {
    "merge_ok": "green",
    "attention": "yellow",
    "block": "red",
}


@click.command("history")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, limit: int):
    """Show past risk analyses for a repository, most recent first."""
    from prguard_store.noop import NoOpStore

    store = get_store(ctx)
    if isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Add 'store: sqlite' to .prguard.yml.")

    records = store.list_analyses(repo, pr_number=pr_number)
    if not records:
        console.print("[yellow]No analyses found.[/yellow]")
        return

    records = list(reversed(records))[:limit]

    table = Table(title=f"Analysis history: {repo}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("Risk", width=9)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Merge", width=10)
    table.add_column("Health", justify="right", width=7)
    table.add_column("Source", width=8)
    table.add_column("Analyzed At", width=20)

    for r in records:
        style = _MERGE_STYLE.get(r.merge_recommendation, "white")
        table.add_row(
            f"#{r.pr_number}",
            r.pr_title[:40] if r.pr_title else "",
            r.overall_risk,
            str(r.risk_score),
            f"[{style}]{r.merge_recommendation}[/{style}]",
            str(r.health_score),
            r.source,
            r.analyzed_at[:19].replace("T", " "),
        )

    console.print(table)
