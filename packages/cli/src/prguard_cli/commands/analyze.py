"""analyze command: analyse one pull request from the terminal."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from prguard_cli.auth import APP
from prguard_cli.context import get_auth, get_settings, get_store, split_repo
from prguard_core.errors import ConfigError, PRGuardError
from prguard_core.models import AnalysisRequest
from prguard_core.orchestrator import RunReport
from prguard_server.wiring import build_orchestrator

console = Console()

_RISK_STYLE = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "green"}


def _print_report(report: RunReport) -> None:
    outcome = report.outcome
    if outcome is None:
        console.print(f"[yellow]No analysis produced ({report.state.value}).[/yellow]")
        return
    result, health = outcome.result, outcome.health
    style = _RISK_STYLE.get(result.overall_risk, "white")

    console.print(f"\n[bold]{outcome.request.ref}[/bold]  {outcome.request.title}")
    console.print(result.summary)
    console.print(
        f"Risk [{style}]{result.overall_risk}[/{style}] · score {result.risk_score}/100 · "
        f"{result.merge_recommendation} · health {health.score}/100 ({health.status})"
    )

    if result.findings:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Level", width=10)
        table.add_column("Area", width=16)
        table.add_column("Finding")
        for f in result.findings:
            s = _RISK_STYLE.get(f.level, "white")
            table.add_row(f"[{s}]{f.level}[/{s}]", f.area, f.title)
        console.print(table)

    if report.analysis_id:
        console.print(f"Saved as [bold]{report.analysis_id}[/bold]")
    for effect in report.failed_effects():
        console.print(f"[yellow]⚠ {effect.step}: {effect.error}[/yellow]")


@click.command("analyze")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option("--silent", is_flag=True, help="Record the analysis without commenting on the PR.")
@click.option(
    "--installation-id",
    type=int,
    default=None,
    help="GitHub App installation id. Looked up from the repository when omitted.",
)
@click.pass_context
def analyze_cmd(ctx, repo: str, pr_number: int, silent: bool, installation_id: int | None):
    """Run one risk analysis on a pull request.

    Posts the analysis comment and labels like the `/prguard analyze`
    command, unless --silent is given.
    """
    owner, name = split_repo(repo)
    settings = get_settings(ctx)
    auth = get_auth(ctx)
    if auth is None:
        raise click.UsageError(
            "No GitHub credentials found. Set GITHUB_TOKEN, run `gh auth login`, "
            "or set GITHUB_APP_ID and GITHUB_PRIVATE_KEY."
        )
    try:
        orchestrator = build_orchestrator(settings, get_store(ctx))
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    source = "silent" if silent else "command"
    try:
        # An App client is scoped to one installation; a token is not.
        if installation_id is None and auth == APP:
            installation_id = orchestrator.host.installation_id_for(owner, name)
        request = AnalysisRequest(owner=owner, repo=name, number=pr_number, title="", installation_id=installation_id)
        report = asyncio.run(orchestrator.run_analysis(request, source=source, post_comment=not silent))
    except PRGuardError as e:
        raise click.ClickException(str(e)) from e

    _print_report(report)
