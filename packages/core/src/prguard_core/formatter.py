"""Markdown bodies for the comments prguard posts on pull requests."""

from __future__ import annotations

from prguard_core.commands import COMMAND_PREFIX
from prguard_core.governance import ProductImpactReport
from prguard_core.models import AnalysisResult, GeneratedTest, RiskFinding

RISK_BADGES = {"critical": "🔴 Critical", "high": "🟠 High", "medium": "🟡 Medium", "low": "🟢 Low"}
_HEALTH_EMOJI = {"healthy": "💚", "attention": "💛", "degraded": "🧡", "critical": "❤️‍🩹"}
_TREND_ARROWS = {"degrading": "↘", "improving": "↗", "stable": "→"}

_COMMAND_LABELS = {
    "analyze": "analysis",
    "generate-tests": "test generation",
    "help": "help",
}


def risk_score_bar(score: int) -> str:
    filled = round(score / 10)
    return f"`{'█' * filled}{'░' * (10 - filled)}` {score}/100"


def _finding_row(finding: RiskFinding) -> str:
    title = finding.title.replace("|", "\\|")
    return f"| {RISK_BADGES[finding.level]} | {finding.area} | {title} |"


def format_decision_banner(result: AnalysisResult, report: ProductImpactReport) -> str:
    decision = report.decision
    return "\n".join(
        [
            f"> ### {decision.emoji} {decision.label}",
            ">",
            f"> **Risk score:** {risk_score_bar(result.risk_score)}",
            ">",
            f"> {decision.reason}",
            ">",
            "> | Risks | Critical | High | Scenarios | Gaps |",
            "> |-------|----------|------|-----------|------|",
            f"> | {len(result.findings)} | {result.count('critical')} | {result.count('high')} "
            f"| {len(result.scenarios)} | {len(result.gaps)} |",
        ]
    )


def format_product_impact(report: ProductImpactReport) -> str:
    health = report.health
    lines = [
        "### 🎯 Product impact",
        "",
        f"**Product health:** {_HEALTH_EMOJI[health.status]} {health.score}/100 "
        f"({health.status}, {_TREND_ARROWS[health.trend]} {health.trend})",
        "",
        report.summary,
    ]
    if report.risks:
        lines += ["", "| Urgency | Area | Impact | Action |", "|---------|------|--------|--------|"]
        for r in report.risks:
            lines.append(f"| {r.urgency} | {r.area} | {r.impact} | {r.action} |")
    return "\n".join(lines)


def format_analysis_body(result: AnalysisResult, report: ProductImpactReport) -> str:
    sections = [
        "## 🛡️ PRGuard risk analysis",
        "",
        format_decision_banner(result, report),
        "",
        "### 📋 Summary",
        "",
        result.summary,
        "",
        f"> **Change type:** {result.change_type}",
        "",
        format_product_impact(report),
        "",
        "### 🚨 Risk assessment",
        "",
        f"**Overall risk:** {RISK_BADGES[result.overall_risk]} | **Risk score:** {result.risk_score}/100",
        "",
    ]
    if result.findings:
        sections += ["| Risk | Area | Title |", "|------|------|-------|"]
        sections += [_finding_row(f) for f in result.findings]
        sections.append("")
        for f in result.findings:
            if f.level not in ("critical", "high"):
                continue
            sections.append(f"<details><summary>{RISK_BADGES[f.level]} <b>{f.title}</b></summary>\n")
            sections.append(f.description)
            if f.impact:
                sections.append(f"\n**Impact:** {f.impact}")
            if f.mitigation:
                sections.append(f"\n**Mitigation:** {f.mitigation}")
            sections.append("\n</details>\n")

    if result.scenarios:
        sections += ["### 🧪 Test scenarios", ""]
        for s in result.scenarios:
            sections.append(f"- **{s.id}** [{s.priority}] {s.title} _({s.test_type})_")
        sections.append("")

    if result.gaps:
        sections += ["### 🔍 Gaps", ""]
        for g in result.gaps:
            sections.append(f"- {RISK_BADGES[g.severity]} **{g.title}**: {g.recommendation}")
        sections.append("")

    if result.acceptance_criteria:
        sections += ["### ✅ Acceptance criteria", ""]
        sections += [f"- {c}" for c in result.acceptance_criteria]
        sections.append("")

    coverage = result.test_coverage
    groups = (
        ("Unit", coverage.unit),
        ("Integration", coverage.integration),
        ("E2E", coverage.e2e),
        ("Manual", coverage.manual),
    )
    if any(items for _, items in groups):
        sections += ["### 📊 Test coverage", ""]
        for label, items in groups:
            if items:
                sections.append(f"**{label}:**")
                sections += [f"- {item}" for item in items]
                sections.append("")
    return "\n".join(sections)


def feedback_section() -> str:
    return """
---

<details>
<summary>📊 <b>Feedback</b>: help improve PRGuard</summary>

React to this comment:
- 👍 useful and accurate analysis
- 👎 inaccurate or not useful
- ❤️ valuable test scenarios
- 🚀 great risk identification
- 😕 something confusing or wrong

</details>
"""


def next_step_hint() -> str:
    return f"\n> 💡 Next step: comment `{COMMAND_PREFIX} generate tests` to generate automated tests for this PR.\n"


def assemble_comment(sections: list[str]) -> str:
    return "\n\n".join(s.strip("\n") for s in sections if s and s.strip())


def format_working_comment(command: str) -> str:
    return f"⏳ PRGuard is running the {_COMMAND_LABELS.get(command, command)} for this PR. Results will follow here."


def format_error_comment(error: Exception, command: str | None = None) -> str:
    what = f"the `{COMMAND_PREFIX} {command}` command" if command else "the analysis of this PR"
    return (
        f"## ❌ PRGuard could not complete {what}\n\n"
        f"```\n{type(error).__name__}: {error}\n```\n\n"
        f"Try again with `{COMMAND_PREFIX} analyze`, or check the server logs."
    )


def format_test_suggestions(tests: list[GeneratedTest]) -> str:
    if not tests:
        return "## 🧪 Generated tests\n\nNo tests could be generated for this PR."
    lines = ["## 🧪 Generated tests", "", f"{len(tests)} test file(s) suggested. Copy them into your test suite:", ""]
    for t in tests:
        lang = "python" if t.filename.endswith(".py") else "typescript" if t.filename.endswith(".ts") else ""
        lines += [
            f"<details><summary><code>{t.filename}</code> ({t.test_type}, {t.framework or 'n/a'})</summary>",
            "",
            f"```{lang}",
            t.code,
            "```",
            "",
            "</details>",
            "",
        ]
    return "\n".join(lines)
