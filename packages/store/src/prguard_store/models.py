"""Analysis history data models.

Decoupled from prguard_core so the store layer can be used independently
and prguard_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FindingRecord:
    """A single risk finding persisted with its analysis."""

    level: str
    area: str
    title: str
    description: str = ""


@dataclass
class GapRecord:
    title: str
    severity: str


@dataclass
class AnalysisRecord:
    """A completed PR analysis persisted to the store.

    The server wiring maps an AnalysisOutcome to an AnalysisRecord before
    calling store.save_analysis(). The id is assigned by the store.
    """

    repo: str
    pr_number: int
    pr_title: str
    head_sha: str
    analyzed_at: str  # ISO-8601 UTC timestamp
    source: str  # "auto" | "silent" | "command"
    overall_risk: str
    risk_score: int
    merge_recommendation: str
    health_score: int
    health_status: str
    summary: str = ""
    findings: list[FindingRecord] = field(default_factory=list)
    gaps: list[GapRecord] = field(default_factory=list)
    id: str | None = None


@dataclass
class CompanionRecord:
    """A generated-tests PR and the auto-fix attempts it has used."""

    repo: str
    number: int
    original_number: int
    branch: str
    tests_json: str = "[]"
    attempts: int = 0
