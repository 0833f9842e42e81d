"""Coverage analysis for the files a change touches.

When the repository commits a coverage report (lcov, Istanbul summary or
coverage.py JSON) the per-file numbers drive the suggestions. Otherwise a
heuristic looks at critical paths, missing test files and the amount of
branching in the diff.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prguard_core.utils.code import is_source_file, is_test_file, module_stem

if TYPE_CHECKING:
    from prguard_core.gh.client import GitHubHost
    from prguard_core.models import AnalysisRequest

logger = logging.getLogger(__name__)

CRITICAL_PATHS = (
    "auth",
    "authentication",
    "login",
    "password",
    "token",
    "jwt",
    "oauth",
    "payment",
    "checkout",
    "billing",
    "transaction",
    "stripe",
    "paypal",
    "security",
    "encryption",
    "crypto",
    "hash",
    "database",
    "migration",
    "schema",
    "api",
    "middleware",
    "controller",
)

COVERAGE_PATHS = (
    ("coverage/coverage-summary.json", "istanbul"),
    ("coverage/lcov.info", "lcov"),
    ("coverage-report/lcov.info", "lcov"),
    ("coverage.json", "coveragepy"),
)

MAX_SUGGESTIONS = 10
_NON_CRITICAL_THRESHOLD = 50.0
_FUNCTION_THRESHOLD = 80.0
_BRANCH_THRESHOLD = 70.0

_COMPLEXITY_PATTERNS = {
    "conditionals": re.compile(r"\bif\s*\(|\bif\s+\w|\bswitch\s*\(|\belif\b|\?\s*\w+\s*:"),
    "loops": re.compile(r"\bfor\s*\(|\bfor\s+\w+\s+in\b|\bwhile\b|\.forEach\(|\.map\(|\.filter\("),
    "error_handling": re.compile(r"\btry\s*[:{]|\bexcept\b|\bcatch\s*\(|\.catch\(|\bthrow\s+|\braise\s+"),
    "async": re.compile(r"\basync\s+|\bawait\s+|\.then\(|\bPromise\b"),
}
_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass(frozen=True)
class FileCoverage:
    path: str
    lines_pct: float
    functions_total: int = 0
    functions_covered: int = 0
    branches_total: int = 0
    branches_covered: int = 0

    @property
    def functions_pct(self) -> float:
        return self.functions_covered / self.functions_total * 100 if self.functions_total else 100.0

    @property
    def branches_pct(self) -> float:
        return self.branches_covered / self.branches_total * 100 if self.branches_total else 100.0


@dataclass(frozen=True)
class CoverageSuggestion:
    priority: str  # "high" | "medium" | "low"
    file: str
    area: str
    reason: str
    test_type: str = "unit"


@dataclass
class CoverageResult:
    found: bool
    report_path: str | None = None
    suggestions: list[CoverageSuggestion] = field(default_factory=list)
    estimated_risk: str = "low"
    critical_paths: list[str] = field(default_factory=list)
    test_files_changed: int = 0
    reasoning: list[str] = field(default_factory=list)


def is_critical_path(path: str) -> bool:
    lowered = path.lower()
    return any(cp in lowered for cp in CRITICAL_PATHS)


# ---------------------------------------------------------------------------
# Report parsing
# ---------------------------------------------------------------------------


def parse_lcov(content: str) -> list[FileCoverage]:
    files = []
    for section in content.split("end_of_record"):
        values: dict[str, str] = {}
        for line in section.splitlines():
            key, sep, value = line.strip().partition(":")
            if sep and key in ("SF", "LF", "LH", "FNF", "FNH", "BRF", "BRH"):
                values[key] = value
        if "SF" not in values:
            continue
        found, hit = int(values.get("LF", 0)), int(values.get("LH", 0))
        files.append(
            FileCoverage(
                path=values["SF"],
                lines_pct=hit / found * 100 if found else 0.0,
                functions_total=int(values.get("FNF", 0)),
                functions_covered=int(values.get("FNH", 0)),
                branches_total=int(values.get("BRF", 0)),
                branches_covered=int(values.get("BRH", 0)),
            )
        )
    return files


def parse_istanbul_summary(content: str) -> list[FileCoverage]:
    data = json.loads(content)
    files = []
    for path, metrics in data.items():
        if path == "total" or not isinstance(metrics, dict):
            continue
        functions = metrics.get("functions", {})
        branches = metrics.get("branches", {})
        files.append(
            FileCoverage(
                path=path,
                lines_pct=float(metrics.get("lines", {}).get("pct", 0) or 0),
                functions_total=int(functions.get("total", 0)),
                functions_covered=int(functions.get("covered", 0)),
                branches_total=int(branches.get("total", 0)),
                branches_covered=int(branches.get("covered", 0)),
            )
        )
    return files


def parse_coveragepy_json(content: str) -> list[FileCoverage]:
    data = json.loads(content)
    files = []
    for path, entry in (data.get("files") or {}).items():
        summary = entry.get("summary", {})
        files.append(
            FileCoverage(
                path=path,
                lines_pct=float(summary.get("percent_covered", 0) or 0),
                branches_total=int(summary.get("num_branches", 0)),
                branches_covered=int(summary.get("covered_branches", 0)),
            )
        )
    return files


_PARSERS = {
    "lcov": parse_lcov,
    "istanbul": parse_istanbul_summary,
    "coveragepy": parse_coveragepy_json,
}


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


def _sorted(suggestions: list[CoverageSuggestion]) -> list[CoverageSuggestion]:
    return sorted(suggestions, key=lambda s: _PRIORITY_ORDER[s.priority])[:MAX_SUGGESTIONS]


def _same_file(report_path: str, changed: str) -> bool:
    """Match whole path components, so "a.py" never matches "src/data.py"."""
    return (
        report_path == changed or report_path.endswith("/" + changed) or changed.endswith("/" + report_path)
    )


def suggestions_from_report(
    report: list[FileCoverage], changed_files: list[str], min_threshold: float
) -> list[CoverageSuggestion]:
    suggestions = []
    for path in changed_files:
        entry = next((f for f in report if _same_file(f.path, path)), None)
        critical = is_critical_path(path)
        if entry is None:
            if critical:
                suggestions.append(
                    CoverageSuggestion("high", path, "Critical path without coverage data", "No known coverage")
                )
            continue

        threshold = float(min_threshold) if critical else _NON_CRITICAL_THRESHOLD
        if entry.lines_pct < threshold:
            suggestions.append(
                CoverageSuggestion(
                    "high" if critical else "medium",
                    path,
                    "Critical path with low coverage" if critical else "Low line coverage",
                    f"{entry.lines_pct:.1f}% coverage (minimum {threshold:.0f}%)",
                )
            )
        if entry.functions_total and entry.functions_pct < _FUNCTION_THRESHOLD:
            missing = entry.functions_total - entry.functions_covered
            suggestions.append(
                CoverageSuggestion("medium", path, "Uncovered functions", f"{missing} function(s) without tests")
            )
        if entry.branches_total and entry.branches_pct < _BRANCH_THRESHOLD:
            missing = entry.branches_total - entry.branches_covered
            suggestions.append(
                CoverageSuggestion("medium", path, "Uncovered branches", f"{missing} branch(es) never exercised")
            )
    return _sorted(suggestions)


def complexity_indicators(diff: str) -> dict[str, int]:
    added = "\n".join(line[1:] for line in diff.splitlines() if line.startswith("+") and not line.startswith("+++"))
    return {name: len(pattern.findall(added)) for name, pattern in _COMPLEXITY_PATTERNS.items()}


def heuristic_analysis(changed_files: list[str], diff: str) -> CoverageResult:
    sources = [f for f in changed_files if is_source_file(f)]
    tests = [f for f in changed_files if is_test_file(f)]
    suggestions: list[CoverageSuggestion] = []
    critical: list[str] = []
    reasoning: list[str] = []

    for path in sources:
        keyword = next((cp for cp in CRITICAL_PATHS if cp in path.lower()), None)
        if keyword:
            critical.append(path)
            suggestions.append(
                CoverageSuggestion(
                    "high", path, f"Critical path: {keyword}", f"File in a sensitive area ({keyword}) needs tests"
                )
            )

    test_names = [t.lower() for t in tests]
    for path in sources:
        if path in critical:
            continue
        stem = module_stem(path).lower()
        if not any(stem in t for t in test_names):
            suggestions.append(
                CoverageSuggestion("medium", path, "No matching test file", "No test file changed for this file")
            )

    indicators = complexity_indicators(diff)
    total = sum(indicators.values())
    if total > 20:
        reasoning.append(f"High complexity: {total} indicators (conditionals, loops, async, error handling)")
    if indicators["error_handling"] > 5:
        reasoning.append(f"{indicators['error_handling']} error-handling sites need sad-path tests")

    if critical or total > 30:
        risk = "high"
    elif len(sources) > 5 or total > 15:
        risk = "medium"
    else:
        risk = "low"

    if sources and not tests:
        reasoning.append(f"No test files changed ({len(sources)} source file(s) changed)")
    elif tests:
        reasoning.append(f"{len(tests)} test file(s) changed")

    return CoverageResult(
        found=False,
        suggestions=_sorted(suggestions),
        estimated_risk=risk,
        critical_paths=critical,
        test_files_changed=len(tests),
        reasoning=reasoning,
    )


def analyze_coverage(
    request: AnalysisRequest,
    changed_files: list[str],
    host: GitHubHost,
    min_threshold: float = 80,
) -> CoverageResult:
    """Coverage result for a change, from a committed report when one exists."""
    for path, kind in COVERAGE_PATHS:
        content = host.get_file_text(request.repo_ref, path)
        if content is None:
            continue
        try:
            report = _PARSERS[kind](content)
        except (ValueError, AttributeError) as e:
            logger.warning("%s: could not parse coverage report %s: %s", request.ref, path, e)
            continue
        logger.info("%s: using coverage report %s (%d files)", request.ref, path, len(report))
        suggestions = suggestions_from_report(report, changed_files, min_threshold)
        return CoverageResult(
            found=True,
            report_path=path,
            suggestions=suggestions,
            estimated_risk="high" if any(s.priority == "high" for s in suggestions) else "low",
            critical_paths=[f for f in changed_files if is_critical_path(f)],
            test_files_changed=sum(1 for f in changed_files if is_test_file(f)),
        )
    return heuristic_analysis(changed_files, request.diff)


def merge_into_test_coverage(unit: tuple[str, ...], result: CoverageResult | None) -> tuple[str, ...]:
    """Append coverage suggestions to the unit-test list, skipping files already mentioned."""
    if result is None:
        return unit
    merged = list(unit)
    for s in result.suggestions:
        if any(s.file in item for item in merged):
            continue
        merged.append(f"[Coverage] {s.file}: {s.reason}")
    return tuple(merged)


_PRIORITY_BADGE = {"high": "🔴", "medium": "🟡", "low": "🟢"}


def format_coverage_section(result: CoverageResult) -> str:
    lines = ["### 📊 Coverage", ""]
    if result.found:
        lines.append(f"Coverage report: `{result.report_path}`")
    else:
        lines.append(f"No coverage report found. **Estimated risk:** {result.estimated_risk.upper()}")
        if result.critical_paths:
            lines.append(f"Critical paths touched: {', '.join(f'`{p}`' for p in result.critical_paths)}")
        if result.test_files_changed:
            lines.append(f"✅ {result.test_files_changed} test file(s) changed")
    for reason in result.reasoning:
        lines.append(f"- {reason}")
    if result.suggestions:
        lines += ["", "**Suggested tests:**", ""]
        for s in result.suggestions:
            lines.append(f"- {_PRIORITY_BADGE[s.priority]} **{s.file}**: {s.reason}")
    lines.append("")
    return "\n".join(lines)
