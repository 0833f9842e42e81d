"""Domain values passed between prguard components.

Decoupled from prguard_store so the core has no knowledge of persistence
concerns. Values produced once per run are frozen; aggregation builds new
values with dataclasses.replace instead of mutating.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from prguard_core.errors import RemediationBoundError

RISK_LEVELS = ("critical", "high", "medium", "low")
MERGE_RECOMMENDATIONS = ("merge_ok", "attention", "block")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str
    installation_id: int | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything the analysis needs to know about one change."""

    owner: str
    repo: str
    number: int
    title: str
    body: str = ""
    diff: str = ""
    action: str = ""
    installation_id: int | None = None
    head_branch: str | None = None
    head_sha: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def ref(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"

    @property
    def repo_ref(self) -> RepoRef:
        return RepoRef(self.owner, self.repo, self.installation_id)


@dataclass(frozen=True)
class ChangeDetails:
    """Change metadata fetched from the host."""

    title: str
    body: str
    diff: str
    head_sha: str
    head_branch: str
    base_branch: str = "main"


@dataclass(frozen=True)
class RiskFinding:
    level: str  # "critical" | "high" | "medium" | "low"
    area: str
    title: str
    description: str = ""
    mitigation: str = ""
    impact: str = ""


@dataclass(frozen=True)
class Gap:
    title: str
    severity: str
    recommendation: str = ""


@dataclass(frozen=True)
class GeneratedTest:
    __test__ = False

    filename: str
    code: str
    framework: str = ""
    test_type: str = "unit"


@dataclass(frozen=True)
class TestScenario:
    __test__ = False

    id: str
    title: str
    category: str = ""
    priority: str = "medium"
    steps: tuple[str, ...] = ()
    expected_result: str = ""
    test_type: str = "unit"
    automated_test: GeneratedTest | None = None


@dataclass(frozen=True)
class TestCoverage:
    __test__ = False

    unit: tuple[str, ...] = ()
    integration: tuple[str, ...] = ()
    e2e: tuple[str, ...] = ()
    manual: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """Verdict of one analysis run.

    risk_score is 0-100 with 100 the worst. It is computed from the findings
    and never derived from ProductHealth.
    """

    overall_risk: str
    summary: str
    risk_score: int
    merge_recommendation: str  # "merge_ok" | "attention" | "block"
    change_type: str = "other"
    findings: tuple[RiskFinding, ...] = ()
    gaps: tuple[Gap, ...] = ()
    scenarios: tuple[TestScenario, ...] = ()
    test_coverage: TestCoverage = field(default_factory=TestCoverage)
    product_impact: str = ""
    acceptance_criteria: tuple[str, ...] = ()
    analyzed_at: str = field(default_factory=_now)

    def count(self, level: str) -> int:
        return sum(1 for f in self.findings if f.level == level)


@dataclass(frozen=True)
class ProductHealth:
    score: int  # 0-100, 100 = healthiest
    status: str  # "healthy" | "attention" | "degraded" | "critical"
    trend: str  # "degrading" | "improving" | "stable"


@dataclass(frozen=True)
class TriggerDecision:
    should_analyze_dashboard: bool
    should_comment_on_pr: bool
    mode: str


@dataclass(frozen=True)
class Command:
    kind: str  # "analyze" | "generate-tests" | "help"


@dataclass(frozen=True)
class FixPayload:
    """A replacement test file proposed by the analysis capability."""

    test: GeneratedTest
    analysis: str = ""


@dataclass(frozen=True)
class FailureDiagnostic:
    check_name: str
    error_message: str
    logs: str = ""
    failed_tests: tuple[str, ...] = ()


@dataclass(frozen=True)
class RemediationAttempt:
    number: int
    fix: FixPayload | None
    success: bool
    error: str | None = None


@dataclass
class RemediationRun:
    """Ordered attempts of one auto-fix run plus its terminal status."""

    max_attempts: int
    attempts: list[RemediationAttempt] = field(default_factory=list)
    status: str = "needs_human"  # "fixed" | "needs_human" | "unfixable"
    message: str = ""

    def record(self, attempt: RemediationAttempt) -> None:
        if attempt.number > self.max_attempts or len(self.attempts) >= self.max_attempts:
            raise RemediationBoundError(
                f"attempt {attempt.number} exceeds the bound of {self.max_attempts}"
            )
        self.attempts.append(attempt)


@dataclass(frozen=True)
class AnalysisOutcome:
    """What persistence and notification collaborators receive after a run."""

    request: AnalysisRequest
    result: AnalysisResult
    health: ProductHealth
    source: str  # "auto" | "silent" | "command"
    changed_files: tuple[str, ...] = ()
