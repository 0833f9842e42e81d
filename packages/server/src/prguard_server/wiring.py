"""Bridges between prguard_core and prguard_store, and orchestrator assembly.

prguard_core has no store knowledge and prguard_store has no core
knowledge; the adapters here map core values to store records.
"""

from __future__ import annotations

import json
from dataclasses import asdict

from prguard_core.analyst import Analyst
from prguard_core.collaborators import AnalysisSink, Companion, CompanionLedger, LiveUpdates
from prguard_core.config import Settings
from prguard_core.gh.client import GitHubHost
from prguard_core.models import AnalysisOutcome, GeneratedTest, RepoRef
from prguard_core.notify.slack import build_notifier
from prguard_core.orchestrator import Orchestrator
from prguard_core.providers.factory import build_provider
from prguard_store.base import BaseStore
from prguard_store.models import AnalysisRecord, CompanionRecord, FindingRecord, GapRecord


def outcome_to_record(outcome: AnalysisOutcome) -> AnalysisRecord:
    """Map an AnalysisOutcome to an AnalysisRecord for the store."""
    request, result = outcome.request, outcome.result
    return AnalysisRecord(
        repo=request.full_name,
        pr_number=request.number,
        pr_title=request.title,
        head_sha=request.head_sha or "",
        analyzed_at=result.analyzed_at,
        source=outcome.source,
        overall_risk=result.overall_risk,
        risk_score=result.risk_score,
        merge_recommendation=result.merge_recommendation,
        health_score=outcome.health.score,
        health_status=outcome.health.status,
        summary=result.summary,
        findings=[
            FindingRecord(level=f.level, area=f.area, title=f.title, description=f.description)
            for f in result.findings
        ],
        gaps=[GapRecord(title=g.title, severity=g.severity) for g in result.gaps],
    )


class StoreSink(AnalysisSink):
    def __init__(self, store: BaseStore):
        self.store = store

    def save(self, outcome: AnalysisOutcome) -> str | None:
        return self.store.save_analysis(outcome_to_record(outcome))


class StoreLedger(CompanionLedger):
    """CompanionLedger persisted through a BaseStore, so attempt counters survive restarts.

    Records are keyed by repository full name; the installation id is taken
    from the ref passed to get().
    """

    def __init__(self, store: BaseStore):
        self.store = store

    def register(self, companion: Companion) -> None:
        self.store.register_companion(
            CompanionRecord(
                repo=companion.ref.full_name,
                number=companion.number,
                original_number=companion.original_number,
                branch=companion.branch,
                tests_json=json.dumps([asdict(t) for t in companion.tests]),
                attempts=companion.attempts,
            )
        )

    def get(self, ref: RepoRef, number: int) -> Companion | None:
        record = self.store.get_companion(ref.full_name, number)
        if record is None:
            return None
        tests = tuple(GeneratedTest(**t) for t in json.loads(record.tests_json or "[]"))
        return Companion(
            ref=ref,
            number=record.number,
            original_number=record.original_number,
            branch=record.branch,
            tests=tests,
            attempts=record.attempts,
        )

    def increment_attempts(self, ref: RepoRef, number: int) -> int:
        return self.store.increment_attempts(ref.full_name, number)


def build_orchestrator(
    settings: Settings,
    store: BaseStore,
    live: LiveUpdates | None = None,
    host: GitHubHost | None = None,
) -> Orchestrator:
    """Assemble an Orchestrator from settings. Raises ConfigError on missing credentials."""
    analyst = Analyst(build_provider(settings), force_block=settings.force_block, hints=settings.feedback_hints)
    return Orchestrator(
        settings,
        host or GitHubHost.from_settings(settings),
        analyst,
        sink=StoreSink(store),
        live=live,
        chat=build_notifier(settings),
        ledger=StoreLedger(store),
    )
