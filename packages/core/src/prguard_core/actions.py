"""Follow-up issues opened from an analysis when autonomous mode is off.

Critical or high gaps and critical findings become issues; the first few
recommended tests become tasks. Each issue is created on its own, so a
refusal from GitHub only moves that one to the failed list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from prguard_core.errors import HostError
from prguard_core.gh.client import GitHubHost
from prguard_core.models import AnalysisResult, Gap, RepoRef, RiskFinding

logger = logging.getLogger(__name__)

MAX_TASKS = 5
_TASK_TITLE_LENGTH = 50
_ISSUE_GAP_SEVERITIES = ("critical", "high")
_FOOTER = "---\n*Opened automatically by PRGuard.*"


@dataclass(frozen=True)
class IssueDraft:
    kind: str  # "gap" | "risk" | "task"
    subject: str
    title: str
    body: str
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class CreatedIssue:
    kind: str
    subject: str
    number: int
    url: str


@dataclass
class IssueCreationResult:
    created: list[CreatedIssue] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (subject, error)


def _gap_draft(gap: Gap, number: int, labels: tuple[str, ...]) -> IssueDraft:
    body = f"""## 🔍 Functional gap

**Found in PR:** #{number}
**Severity:** {gap.severity.upper()}

### Description
{gap.title}

### Recommendation
{gap.recommendation or "n/a"}

{_FOOTER}"""
    return IssueDraft(
        "gap", gap.title, f"[PRGuard] Gap: {gap.title}", body, (*labels, f"priority:{gap.severity}", "type:gap")
    )


def _risk_draft(finding: RiskFinding, number: int, labels: tuple[str, ...]) -> IssueDraft:
    body = f"""## ⚠️ Critical risk

**Found in PR:** #{number}
**Risk level:** {finding.level.upper()}
**Area:** {finding.area}

### Description
{finding.description or finding.title}

### Recommended mitigation
{finding.mitigation or "n/a"}

{_FOOTER}"""
    return IssueDraft(
        "risk",
        finding.area,
        f"[PRGuard] Risk: {finding.area}",
        body,
        (*labels, f"priority:{finding.level}", "type:risk"),
    )


def issue_drafts(result: AnalysisResult, number: int, labels: tuple[str, ...] = ()) -> list[IssueDraft]:
    drafts = [_gap_draft(g, number, labels) for g in result.gaps if g.severity in _ISSUE_GAP_SEVERITIES]
    drafts += [_risk_draft(f, number, labels) for f in result.findings if f.level == "critical"]
    return drafts


def task_drafts(result: AnalysisResult, number: int, labels: tuple[str, ...] = ()) -> list[IssueDraft]:
    """One task per recommended automated test, at most MAX_TASKS."""
    coverage = result.test_coverage
    tests = [("unit", t) for t in coverage.unit]
    tests += [("integration", t) for t in coverage.integration]
    tests += [("e2e", t) for t in coverage.e2e]

    drafts = []
    for test_type, description in tests[:MAX_TASKS]:
        short = description[:_TASK_TITLE_LENGTH]
        if len(description) > _TASK_TITLE_LENGTH:
            short += "..."
        body = f"""## 🧪 Test task

**Related to PR:** #{number}
**Test type:** {test_type.upper()}

### Description
{description}

### Acceptance criteria
- [ ] Test is implemented
- [ ] Test passes locally
- [ ] Test runs in CI

{_FOOTER}"""
        labels_for_task = (*labels, "type:task", f"test:{test_type}")
        drafts.append(IssueDraft("task", description, f"[PRGuard] Test: {short}", body, labels_for_task))
    return drafts


def create_issues(host: GitHubHost, ref: RepoRef, drafts: list[IssueDraft]) -> IssueCreationResult:
    result = IssueCreationResult()
    for draft in drafts:
        try:
            issue = host.create_issue(ref, draft.title, draft.body, list(draft.labels))
        except HostError as e:
            logger.warning("%s: could not open %s issue for %r: %s", ref.full_name, draft.kind, draft.subject, e)
            result.failed.append((draft.subject, str(e)))
            continue
        result.created.append(CreatedIssue(draft.kind, draft.subject, issue.number, issue.url))
    logger.info("%s: %d issue(s) created, %d failed", ref.full_name, len(result.created), len(result.failed))
    return result


def format_issues_summary(result: IssueCreationResult) -> str:
    if not result.created and not result.failed:
        return ""
    lines = ["### 📋 Issues and tasks", ""]
    if result.created:
        lines += ["| Type | Subject | Issue |", "|------|---------|-------|"]
        lines += [f"| {i.kind} | {i.subject} | [#{i.number}]({i.url}) |" for i in result.created]
        lines.append("")
    if result.failed:
        lines.append("**Could not create:**")
        lines += [f"- {subject}: {error}" for subject, error in result.failed]
    return "\n".join(lines)
