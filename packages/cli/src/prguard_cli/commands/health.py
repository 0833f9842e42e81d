"""health command: product health of a PR from its latest stored analysis."""

from __future__ import annotations

import click
from rich.console import Console

from prguard_cli.context import get_store
from prguard_core.governance import compute_health, describe_merge_recommendation
from prguard_core.models import AnalysisResult, Gap, RiskFinding
from prguard_store.models import AnalysisRecord

console = Console()

_STATUS_STYLE = {"healthy": "green", "attention": "yellow", "degraded": "dark_orange", "critical": "red"}


def record_to_result(record: AnalysisRecord) -> AnalysisResult:
    """Rebuild the parts of an AnalysisResult that health depends on."""
    return AnalysisResult(
        overall_risk=record.overall_risk,
        summary=record.summary,
        risk_score=record.risk_score,
        merge_recommendation=record.merge_recommendation,
        findings=tuple(
            RiskFinding(level=f.level, area=f.area, title=f.title, description=f.description) for f in record.findings
        ),
        gaps=tuple(Gap(title=g.title, severity=g.severity) for g in record.gaps),
        analyzed_at=record.analyzed_at,
    )


@click.command("health")
@click.option("--repo", required=True, help="GitHub repository (owner/name).")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.pass_context
def health_cmd(ctx, repo: str, pr_number: int):
    """Recompute product health from the latest stored analysis of a PR."""
    records = get_store(ctx).list_analyses(repo, pr_number=pr_number)
    if not records:
        raise click.ClickException(f"No stored analysis for {repo}#{pr_number}.")

    record = records[-1]
    result = record_to_result(record)
    health = compute_health(result)
    decision = describe_merge_recommendation(result.merge_recommendation)
    style = _STATUS_STYLE.get(health.status, "white")

    console.print(f"[bold]{repo}#{pr_number}[/bold]  {record.pr_title}")
    console.print(f"Product health: [{style}]{health.score}/100 {health.status}[/{style}] ({health.trend})")
    console.print(f"Merge: {decision.emoji} {decision.label}")
    console.print(f"Analysed {record.analyzed_at[:19].replace('T', ' ')} · risk score {result.risk_score}/100")
