"""The analysis capability: risk analysis, test generation and test repair.

The model is asked for JSON. Everything it returns is validated here and
turned into frozen domain values; unknown enum values fall back to a safe
default instead of leaking into the rest of the system. Scoring and the merge
recommendation are deterministic and never taken from the model.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from prguard_core.errors import AnalysisError
from prguard_core.models import (
    RISK_LEVELS,
    AnalysisRequest,
    AnalysisResult,
    FailureDiagnostic,
    FixPayload,
    Gap,
    GeneratedTest,
    RiskFinding,
    TestCoverage,
    TestScenario,
)

if TYPE_CHECKING:
    from prguard_core.providers.base import BaseProvider

logger = logging.getLogger(__name__)

MAX_DIFF_LENGTH = 15000

CHANGE_TYPES = ("feature", "bugfix", "refactor", "config", "docs", "mixed")

RISK_WEIGHTS = {"critical": 40, "high": 25, "medium": 10, "low": 3}
GAP_WEIGHTS = {"critical": 15, "high": 10, "medium": 5, "low": 2}
BASE_SCORES = {"critical": 30, "high": 20, "medium": 10, "low": 0}
_RISK_CAP = 50
_GAP_CAP = 15
_UNTESTED_CRITICAL_SCENARIO_PENALTY = 5

BLOCK_THRESHOLD = 70
ATTENTION_THRESHOLD = 30


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def calculate_risk_score(result: AnalysisResult) -> int:
    """Return a 0-100 risk score where 100 is the worst.

    base by overall risk (0-30) + finding weights (capped at 50)
    + gap weights (capped at 15) + 5 when a critical scenario has no
    automated test.
    """
    score = BASE_SCORES.get(result.overall_risk, 0)
    score += min(sum(RISK_WEIGHTS.get(f.level, 0) for f in result.findings), _RISK_CAP)
    score += min(sum(GAP_WEIGHTS.get(g.severity, 0) for g in result.gaps), _GAP_CAP)
    critical = [s for s in result.scenarios if s.priority == "critical"]
    if any(s.automated_test is None for s in critical):
        score += _UNTESTED_CRITICAL_SCENARIO_PENALTY
    return max(0, min(100, round(score)))


def determine_merge_recommendation(result: AnalysisResult, force_block: bool = False) -> str:
    """Choose merge_ok / attention / block.

    A block needs at least one critical or high finding to point at. Without
    one, a high score or a critical overall rating is downgraded to attention,
    unless the configuration forces blocking.
    """
    if force_block:
        return "block"
    wants_block = result.overall_risk == "critical" or result.risk_score >= BLOCK_THRESHOLD
    has_severe = result.count("critical") > 0 or result.count("high") > 0
    if wants_block and has_severe:
        return "block"
    if wants_block or result.overall_risk == "high" or result.risk_score >= ATTENTION_THRESHOLD:
        return "attention"
    return "merge_ok"


# ---------------------------------------------------------------------------
# Response validation
# ---------------------------------------------------------------------------


def _level(value: Any) -> str:
    return value if value in RISK_LEVELS else "medium"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _mitigation(value: Any) -> str:
    if isinstance(value, dict):
        parts = [
            f"{key.capitalize()}: {value[key]}" for key in ("preventive", "detective", "corrective") if value.get(key)
        ]
        return " ".join(parts)
    return _text(value)


def _generated_test(data: Any, default_type: str = "unit") -> GeneratedTest | None:
    if not isinstance(data, dict) or not data.get("code"):
        return None
    return GeneratedTest(
        filename=_text(data.get("filename")) or "test_generated.py",
        code=_text(data["code"]),
        framework=_text(data.get("framework")),
        test_type=_text(data.get("type") or data.get("test_type")) or default_type,
    )


def _finding(data: dict) -> RiskFinding:
    area = _text(data.get("area"))
    return RiskFinding(
        level=_level(data.get("level")),
        area=area,
        title=_text(data.get("title")) or area,
        description=_text(data.get("description")),
        mitigation=_mitigation(data.get("mitigation")),
        impact=_text(data.get("impact")),
    )


def _scenario(data: dict, index: int) -> TestScenario:
    return TestScenario(
        id=_text(data.get("id")) or f"TC{index + 1:03d}",
        title=_text(data.get("title")),
        category=_text(data.get("category")) or "happy_path",
        priority=_level(data.get("priority")),
        steps=tuple(_text(s) for s in _list(data.get("steps"))),
        expected_result=_text(data.get("expected_result") or data.get("expectedResult")),
        test_type=_text(data.get("test_type") or data.get("testType")) or "unit",
        automated_test=_generated_test(data.get("automated_test") or data.get("automatedTest")),
    )


def _gap(data: dict) -> Gap:
    return Gap(
        title=_text(data.get("title")),
        severity=_level(data.get("severity")),
        recommendation=_text(data.get("recommendation")),
    )


def parse_analysis(data: dict, force_block: bool = False) -> AnalysisResult:
    """Validate a decoded model response into an AnalysisResult with score and recommendation."""
    summary = data.get("summary")
    if isinstance(summary, dict):
        summary_text = _text(summary.get("description") or summary.get("title"))
        change_type = summary.get("change_type") or summary.get("changeType")
    else:
        summary_text = _text(summary)
        change_type = data.get("change_type")
    coverage = data.get("test_coverage") or data.get("testCoverage") or {}
    if not isinstance(coverage, dict):
        coverage = {}

    result = AnalysisResult(
        overall_risk=_level(data.get("overall_risk") or data.get("overallRisk")),
        summary=summary_text or "Analysis completed",
        risk_score=0,
        merge_recommendation="merge_ok",
        change_type=change_type if change_type in CHANGE_TYPES else "mixed",
        findings=tuple(_finding(r) for r in _list(data.get("risks")) if isinstance(r, dict)),
        gaps=tuple(_gap(g) for g in _list(data.get("gaps")) if isinstance(g, dict)),
        scenarios=tuple(_scenario(s, i) for i, s in enumerate(_list(data.get("scenarios"))) if isinstance(s, dict)),
        test_coverage=TestCoverage(
            unit=tuple(_text(x) for x in _list(coverage.get("unit"))),
            integration=tuple(_text(x) for x in _list(coverage.get("integration"))),
            e2e=tuple(_text(x) for x in _list(coverage.get("e2e"))),
            manual=tuple(_text(x) for x in _list(coverage.get("manual"))),
        ),
        product_impact=_text(data.get("product_impact") or data.get("productImpact")),
        acceptance_criteria=tuple(
            _text(c) for c in _list(data.get("acceptance_criteria") or data.get("acceptanceCriteria"))
        ),
    )
    result = replace(result, risk_score=calculate_risk_score(result))
    return replace(result, merge_recommendation=determine_merge_recommendation(result, force_block))


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_ANALYSIS_SYSTEM = """You are a senior QA engineer reviewing a pull request for risk.
Identify what could break, what is untested and what requirements are ambiguous.
Be concrete: name files, functions and user flows.

Respond with **only** a valid JSON object:

{
  "summary": {"title": "<short title>", "description": "<2-3 sentences>", "change_type": "<feature|bugfix|refactor|config|docs|mixed>"},
  "overall_risk": "<critical|high|medium|low>",
  "risks": [{"level": "<critical|high|medium|low>", "area": "<area>", "title": "<title>", "description": "<what can go wrong>", "impact": "<user impact>", "mitigation": "<how to reduce it>"}],
  "gaps": [{"title": "<missing requirement or test>", "severity": "<critical|high|medium|low>", "recommendation": "<what to do>"}],
  "scenarios": [{"id": "TC001", "title": "<title>", "category": "<happy_path|sad_path|edge_case>", "priority": "<critical|high|medium|low>", "steps": ["<step>"], "expected_result": "<result>", "test_type": "<unit|integration|e2e|manual>"}],
  "test_coverage": {"unit": [], "integration": [], "e2e": [], "manual": []},
  "acceptance_criteria": ["<criterion>"],
  "product_impact": "<one paragraph for a product audience>"
}

Do not return any text outside the JSON object."""  # noqa: E501

_TESTS_SYSTEM = """You are a test code generator. Write runnable automated tests for the scenarios below,
using the test framework already visible in the diff when there is one.

Respond with **only** a valid JSON object:

{"tests": [{"filename": "<file name, no directories>", "code": "<full file content>", "framework": "<framework>", "type": "<unit|integration|e2e>"}]}"""  # noqa: E501

_FIX_SYSTEM = """You repair failing automated tests that were generated for a pull request.
Read the CI diagnostics and return a corrected version of the failing test file.

Respond with **only** a valid JSON object:

{
  "can_fix": true,
  "analysis": "<what was wrong>",
  "fixed_test": {"filename": "<same file name>", "code": "<full corrected file>", "framework": "<framework>", "type": "<unit|integration|e2e>"}
}

If the failure needs a human decision or is an infrastructure problem, set "can_fix" to false."""  # noqa: E501


class Analyst:
    """Drives the LLM provider for every model-backed operation."""

    def __init__(self, provider: BaseProvider, force_block: bool = False, hints: tuple[str, ...] = ()):
        self.provider = provider
        self.force_block = force_block
        self.hints = hints

    def _system(self, base: str) -> str:
        if not self.hints:
            return base
        lines = "\n".join(f"- {h}" for h in self.hints)
        return f"{base}\n\nTeam feedback from earlier analyses:\n{lines}"

    def analyze(self, request: AnalysisRequest, context: str = "") -> AnalysisResult:
        diff = request.diff
        if len(diff) > MAX_DIFF_LENGTH:
            diff = diff[:MAX_DIFF_LENGTH] + "\n... (diff truncated)"
        user = f"""## Pull Request
{request.full_name} #{request.number}: {request.title}

{request.body or "(no description)"}
{context}
## Diff
{diff}"""
        raw = self.provider.complete(self._system(_ANALYSIS_SYSTEM), user)
        if raw is None:
            raise AnalysisError(f"{request.ref}: the model did not return an analysis")
        data = self.provider.parse_json_object(raw)
        if data is None:
            raise AnalysisError(f"{request.ref}: the model response was not a JSON object")
        result = parse_analysis(data, force_block=self.force_block)
        logger.info(
            "%s: analysis parsed (%d risks, %d scenarios, score %d, %s)",
            request.ref,
            len(result.findings),
            len(result.scenarios),
            result.risk_score,
            result.merge_recommendation,
        )
        return result

    def generate_tests(self, request: AnalysisRequest, result: AnalysisResult) -> list[GeneratedTest]:
        """Return generated test files, reusing tests the analysis already embedded in scenarios."""
        embedded = [s.automated_test for s in result.scenarios if s.automated_test is not None]
        if embedded:
            return embedded

        scenarios = "\n".join(
            f"- [{s.priority}] {s.id} {s.title} ({s.test_type}): {' → '.join(s.steps)} ⇒ {s.expected_result}"
            for s in result.scenarios
        )
        user = f"""## Pull Request
{request.full_name} #{request.number}: {request.title}

## Scenarios
{scenarios or "(none listed, derive them from the diff)"}

## Diff
{request.diff[:MAX_DIFF_LENGTH]}"""
        raw = self.provider.complete(self._system(_TESTS_SYSTEM), user)
        if raw is None:
            return []
        data = self.provider.parse_json_object(raw) or {}
        tests = [_generated_test(t) for t in _list(data.get("tests"))]
        return [t for t in tests if t is not None]

    def request_fix(
        self, diagnostics: list[FailureDiagnostic], original_tests: list[GeneratedTest]
    ) -> FixPayload | None:
        """Ask the model for a corrected test file. None means it cannot or did not produce one."""
        failures = "\n\n".join(
            f"### {d.check_name}\nError: {d.error_message}\n"
            + (f"Failed tests: {', '.join(d.failed_tests)}\n" if d.failed_tests else "")
            + f"```\n{d.logs}\n```"
            for d in diagnostics
        )
        tests = "\n\n".join(
            f"### {t.filename}\nFramework: {t.framework}\n```\n{t.code}\n```" for t in original_tests
        )
        user = f"## CI failures\n{failures}\n\n## Original tests\n{tests or '(not available)'}"
        raw = self.provider.complete(self._system(_FIX_SYSTEM), user)
        if raw is None:
            return None
        data = self.provider.parse_json_object(raw)
        if data is None or not (data.get("can_fix") or data.get("canFix")):
            return None
        fixed = _generated_test(data.get("fixed_test") or data.get("fixedTest"))
        if fixed is None:
            return None
        return FixPayload(test=fixed, analysis=_text(data.get("analysis")))
