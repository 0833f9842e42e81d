"""Event handling for prguard.

One Orchestrator serves every webhook delivery. A run has a single critical
path (fetch, analyse, report); persistence, live updates, chat messages and
labels are best-effort effects recorded on the RunReport. Blocking PyGithub
and SDK calls run in worker threads so deliveries for different changes can
proceed concurrently. Two deliveries for the same change are not serialised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable

from prguard_core.actions import IssueCreationResult, create_issues, format_issues_summary, issue_drafts, task_drafts
from prguard_core.analyst import Analyst
from prguard_core.autonomous import AutonomousExecutor, AutonomousResult, format_autonomous_summary
from prguard_core.collaborators import (
    AnalysisSink,
    ChatNotifier,
    CompanionLedger,
    InMemoryLedger,
    LiveUpdates,
    NullLiveUpdates,
    NullNotifier,
    NullSink,
)
from prguard_core.commands import help_message, parse_command
from prguard_core.config import Settings
from prguard_core.coverage import CoverageResult, analyze_coverage, format_coverage_section, merge_into_test_coverage
from prguard_core.dependencies import DependencyResult, analyze_dependencies, format_dependency_section
from prguard_core.effects import EffectResult, run_effect
from prguard_core.errors import PayloadError
from prguard_core.events import CheckRunEvent, CommentEvent, PullRequestEvent
from prguard_core.formatter import (
    assemble_comment,
    feedback_section,
    format_analysis_body,
    format_error_comment,
    format_test_suggestions,
    format_working_comment,
    next_step_hint,
)
from prguard_core.gh.client import GitHubHost
from prguard_core.governance import product_impact_report
from prguard_core.loop_guard import is_self_generated
from prguard_core.models import AnalysisOutcome, AnalysisRequest, AnalysisResult, GeneratedTest, RemediationRun
from prguard_core.remediation import Remediator
from prguard_core.trigger import resolve_trigger
from prguard_core.utils.code import extract_changed_files

logger = logging.getLogger(__name__)

SUPPORTED_ACTIONS = ("opened", "synchronize", "reopened")


class RunState(str, Enum):
    RECEIVED = "received"
    LOOP_CHECKED = "loop_checked"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    AGGREGATING = "aggregating"
    REPORTING = "reporting"
    PERSISTED = "persisted"
    NOTIFIED = "notified"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RunReport:
    """How far a run got and what each best-effort step did."""

    state: RunState = RunState.RECEIVED
    source: str | None = None
    reason: str = ""
    outcome: AnalysisOutcome | None = None
    analysis_id: str | None = None
    autonomous: AutonomousResult | None = None
    suggested_tests: list[GeneratedTest] | None = None
    issues: IssueCreationResult | None = None
    effects: list[EffectResult] = field(default_factory=list)
    error: str | None = None

    def advance(self, state: RunState) -> None:
        self.state = state

    def skip(self, reason: str) -> RunReport:
        self.state = RunState.SKIPPED
        self.reason = reason
        return self

    def failed_effects(self) -> list[EffectResult]:
        return [e for e in self.effects if not e.ok]


def _live_payload(request: AnalysisRequest, status: str, **extra: Any) -> dict[str, Any]:
    data = {
        "repo": request.full_name,
        "pr_number": request.number,
        "title": request.title,
        "status": status,
    }
    data.update(extra)
    return data


class Orchestrator:
    def __init__(
        self,
        settings: Settings,
        host: GitHubHost,
        analyst: Analyst,
        sink: AnalysisSink | None = None,
        live: LiveUpdates | None = None,
        chat: ChatNotifier | None = None,
        ledger: CompanionLedger | None = None,
    ):
        self.settings = settings
        self.host = host
        self.analyst = analyst
        self.sink = sink or NullSink()
        self.live = live or NullLiveUpdates()
        self.chat = chat or NullNotifier()
        self.ledger = ledger or InMemoryLedger()
        self.autonomous = AutonomousExecutor(host, analyst, self.ledger, settings)
        self.remediator = Remediator(
            host,
            analyst,
            self.ledger,
            self.chat,
            self.live,
            output_dir=settings.test_output_dir,
            max_attempts=settings.max_fix_attempts,
        )

    # ------------------------------------------------------------------ #
    # Pull request events                                                 #
    # ------------------------------------------------------------------ #

    async def handle_pull_request(self, event: PullRequestEvent) -> RunReport:
        report = RunReport()
        label = f"{event.ref.full_name}#{event.number}"
        if is_self_generated(event.title, event.head_branch):
            logger.info("%s: change was generated by prguard, skipping", label)
            return report.skip("self-generated change")
        report.advance(RunState.LOOP_CHECKED)

        if event.action not in SUPPORTED_ACTIONS:
            logger.debug("%s: ignoring pull_request action %r", label, event.action)
            return report.skip(f"unsupported action {event.action!r}")

        decision = resolve_trigger(self.settings.trigger)
        if not decision.should_analyze_dashboard:
            logger.info("%s: trigger mode %s does not analyse on pull_request events", label, decision.mode)
            return report.skip(f"trigger mode {decision.mode}")

        if event.ref.installation_id is None:
            raise PayloadError(f"{label}: pull_request payload has no installation id")

        request = AnalysisRequest(
            owner=event.ref.owner,
            repo=event.ref.repo,
            number=event.number,
            title=event.title,
            body=event.body,
            action=event.action,
            installation_id=event.ref.installation_id,
            head_branch=event.head_branch,
            head_sha=event.head_sha,
        )
        source = "auto" if decision.should_comment_on_pr else "silent"
        return await self.run_analysis(
            request, source=source, post_comment=decision.should_comment_on_pr, report=report
        )

    async def run_analysis(
        self,
        request: AnalysisRequest,
        source: str,
        post_comment: bool,
        report: RunReport | None = None,
        hint: bool = False,
        command: str | None = None,
    ) -> RunReport:
        """Fetch, analyse and report on one change.

        Any failure on the critical path marks the run FAILED, emits a failed
        live update, posts an error comment when comments are enabled, and is
        re-raised.
        """
        report = report or RunReport(state=RunState.LOOP_CHECKED)
        report.source = source
        try:
            request = await self._fetch(request, report)
            outcome, coverage, dependencies = await self._analyze(request, source, report)
            report.outcome = outcome

            if post_comment:
                if self.settings.autonomous_enabled:
                    report.autonomous = await asyncio.to_thread(self.autonomous.execute, request, outcome.result)
                else:
                    await self._follow_up(request, outcome.result, report)
                await self._report(outcome, coverage, dependencies, report, hint)

            await self._persist(outcome, report)
            await self._notify(outcome, report)
        except Exception as e:
            await self._fail(request, e, report, post_comment, command)
            raise

        report.advance(RunState.DONE)
        logger.info(
            "%s: run done (%s, risk %s, score %d, %s)",
            request.ref,
            source,
            outcome.result.overall_risk,
            outcome.result.risk_score,
            outcome.result.merge_recommendation,
        )
        return report

    async def _fetch(self, request: AnalysisRequest, report: RunReport) -> AnalysisRequest:
        report.advance(RunState.FETCHING)
        details = await asyncio.to_thread(self.host.fetch_change_details, request.repo_ref, request.number)
        request = replace(
            request,
            title=details.title or request.title,
            body=details.body,
            diff=details.diff,
            head_sha=details.head_sha,
            head_branch=details.head_branch,
        )
        report.effects.append(
            await run_effect(
                "live analysis_started",
                self.live.analysis_started,
                _live_payload(request, "analyzing", source=report.source),
            )
        )
        return request

    async def _optional(self, step: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run an auxiliary analyzer in a thread; its failure degrades to None."""
        effect = await run_effect(step, fn, *args)
        return effect.value if effect.ok else None

    async def _analyze(
        self, request: AnalysisRequest, source: str, report: RunReport
    ) -> tuple[AnalysisOutcome, CoverageResult | None, DependencyResult | None]:
        report.advance(RunState.ANALYZING)
        changed = extract_changed_files(request.diff)
        coverage_task = (
            self._optional(
                "coverage analysis",
                analyze_coverage,
                request,
                changed,
                self.host,
                self.settings.coverage_min_threshold,
            )
            if self.settings.coverage_enabled
            else asyncio.sleep(0, result=None)
        )
        coverage, dependencies, result = await asyncio.gather(
            coverage_task,
            self._optional("dependency analysis", analyze_dependencies, changed, request.diff),
            asyncio.to_thread(self.analyst.analyze, request),
        )

        report.advance(RunState.AGGREGATING)
        unit = merge_into_test_coverage(result.test_coverage.unit, coverage)
        result = replace(result, test_coverage=replace(result.test_coverage, unit=unit))
        health = product_impact_report(result).health
        outcome = AnalysisOutcome(
            request=request, result=result, health=health, source=source, changed_files=tuple(changed)
        )
        return outcome, coverage, dependencies

    async def _follow_up(self, request: AnalysisRequest, result: AnalysisResult, report: RunReport) -> None:
        """Suggested tests and issues for a commented run without autonomous mode."""
        settings = self.settings
        if settings.auto_generate_tests:
            effect = await run_effect("generate tests", self.analyst.generate_tests, request, result)
            report.effects.append(effect)
            if effect.ok:
                report.suggested_tests = effect.value
        if settings.auto_create_issues:
            drafts = issue_drafts(result, request.number, settings.issue_labels)
            if settings.auto_create_tasks:
                drafts += task_drafts(result, request.number, settings.issue_labels)
            effect = await run_effect("create issues", create_issues, self.host, request.repo_ref, drafts)
            report.effects.append(effect)
            if effect.ok:
                report.issues = effect.value

    async def _report(
        self,
        outcome: AnalysisOutcome,
        coverage: CoverageResult | None,
        dependencies: DependencyResult | None,
        report: RunReport,
        hint: bool,
    ) -> None:
        report.advance(RunState.REPORTING)
        request, result = outcome.request, outcome.result
        sections = [format_analysis_body(result, product_impact_report(result))]
        if coverage is not None:
            sections.append(format_coverage_section(coverage))
        if dependencies is not None and dependencies.has_changes:
            sections.append(format_dependency_section(dependencies))
        if report.suggested_tests is not None:
            sections.append(format_test_suggestions(report.suggested_tests))
        if report.issues is not None:
            sections.append(format_issues_summary(report.issues))
        if report.autonomous is not None:
            sections.append(format_autonomous_summary(report.autonomous))
        if hint:
            sections.append(next_step_hint())
        sections.append(feedback_section())

        await asyncio.to_thread(self.host.post_comment, request.repo_ref, request.number, assemble_comment(sections))
        report.effects.append(
            await run_effect(
                "apply risk labels",
                self.host.apply_risk_labels,
                request.repo_ref,
                request.number,
                result.overall_risk,
                result.merge_recommendation,
            )
        )

    async def _persist(self, outcome: AnalysisOutcome, report: RunReport) -> None:
        effect = await run_effect("persist analysis", self.sink.save, outcome)
        report.effects.append(effect)
        report.analysis_id = effect.value if effect.ok else None
        report.advance(RunState.PERSISTED)

    def _actions(self, report: RunReport) -> list[str]:
        actions = []
        if report.source != "silent":
            actions.append("Posted the analysis comment")
        auto = report.autonomous
        if auto is not None:
            if auto.tests:
                actions.append(f"Generated {len(auto.tests)} test file(s)")
            if auto.pr is not None:
                actions.append(f"Opened companion PR #{auto.pr.number}")
            actions += [f"Error: {e}" for e in auto.errors]
        if report.suggested_tests:
            actions.append(f"Suggested {len(report.suggested_tests)} test file(s)")
        if report.issues is not None and report.issues.created:
            actions.append(f"Opened {len(report.issues.created)} issue(s)")
        return actions

    async def _notify(self, outcome: AnalysisOutcome, report: RunReport) -> None:
        request, result = outcome.request, outcome.result
        blocked = result.merge_recommendation == "block"
        effects = [
            await run_effect(
                "live analysis_updated",
                self.live.analysis_updated,
                _live_payload(
                    request,
                    "completed",
                    analysis_id=report.analysis_id,
                    overall_risk=result.overall_risk,
                    risk_score=result.risk_score,
                    merge_recommendation=result.merge_recommendation,
                    health_score=outcome.health.score,
                ),
            )
        ]
        if result.overall_risk == "critical" or blocked:
            effects.append(
                await run_effect(
                    "live critical notification",
                    self.live.notification,
                    "critical_risk",
                    f"Critical risk in {request.ref}",
                    result.summary,
                    {"repo": request.full_name, "pr_number": request.number, "analysis_id": report.analysis_id},
                )
            )
        effects.append(
            await run_effect(
                "chat action report", self.chat.send_action_report, outcome, report.analysis_id, self._actions(report)
            )
        )
        if result.count("critical") or blocked:
            effects.append(await run_effect("chat critical alert", self.chat.send_critical_alert, outcome))
        report.effects += effects
        report.advance(RunState.NOTIFIED)

    async def _fail(
        self, request: AnalysisRequest, error: Exception, report: RunReport, post_comment: bool, command: str | None
    ) -> None:
        logger.error("%s: run failed in %s: %s", request.ref, report.state.value, error)
        report.advance(RunState.FAILED)
        report.error = f"{type(error).__name__}: {error}"
        report.effects.append(
            await run_effect(
                "live analysis_updated",
                self.live.analysis_updated,
                _live_payload(request, "failed", error=report.error),
            )
        )
        report.effects.append(
            await run_effect(
                "live failure notification",
                self.live.notification,
                "analysis_failed",
                f"Analysis failed for {request.ref}",
                report.error,
                {"repo": request.full_name, "pr_number": request.number},
            )
        )
        if post_comment:
            report.effects.append(
                await run_effect(
                    "post error comment",
                    self.host.post_comment,
                    request.repo_ref,
                    request.number,
                    format_error_comment(error, command),
                )
            )

    # ------------------------------------------------------------------ #
    # Comment commands                                                    #
    # ------------------------------------------------------------------ #

    async def handle_comment(self, event: CommentEvent) -> RunReport:
        report = RunReport()
        label = f"{event.ref.full_name}#{event.number}"
        if event.action != "created":
            return report.skip(f"unsupported action {event.action!r}")
        if event.author_type == "Bot":
            return report.skip("comment from a bot")
        if not event.is_pull_request:
            return report.skip("comment is not on a pull request")

        command = parse_command(event.body)
        if command is None:
            return report.skip("no command")
        if event.ref.installation_id is None:
            logger.warning("%s: /prguard %s without installation id, skipping", label, command.kind)
            return report.skip("missing installation id")

        logger.info("%s: %s requested %s", label, event.author, command.kind)
        ref = event.ref
        request = AnalysisRequest(
            owner=ref.owner, repo=ref.repo, number=event.number, title="", installation_id=ref.installation_id
        )
        try:
            if command.kind == "help":
                await asyncio.to_thread(self.host.post_comment, ref, event.number, help_message())
                report.advance(RunState.DONE)
                return report

            await asyncio.to_thread(self.host.post_comment, ref, event.number, format_working_comment(command.kind))
            report.advance(RunState.LOOP_CHECKED)
            if command.kind == "analyze":
                return await self.run_analysis(
                    request, source="command", post_comment=True, report=report, hint=True, command=command.kind
                )
            return await self._generate_tests(request, report)
        except Exception as e:
            # run_analysis reports its own failures
            if report.state != RunState.FAILED:
                logger.error("%s: /prguard %s failed: %s", label, command.kind, e)
                report.advance(RunState.FAILED)
                report.error = f"{type(e).__name__}: {e}"
                report.effects.append(
                    await run_effect(
                        "post error comment",
                        self.host.post_comment,
                        ref,
                        event.number,
                        format_error_comment(e, command.kind),
                    )
                )
            raise

    async def _generate_tests(self, request: AnalysisRequest, report: RunReport) -> RunReport:
        report.source = "command"
        request = await self._fetch(request, report)
        report.advance(RunState.ANALYZING)
        result = await asyncio.to_thread(self.analyst.analyze, request)

        report.advance(RunState.REPORTING)
        if self.settings.autonomous_enabled:
            report.autonomous = await asyncio.to_thread(self.autonomous.execute, request, result)
            body = format_autonomous_summary(report.autonomous)
        else:
            tests = await asyncio.to_thread(self.analyst.generate_tests, request, result)
            body = format_test_suggestions(tests)
        await asyncio.to_thread(self.host.post_comment, request.repo_ref, request.number, body)
        report.advance(RunState.DONE)
        return report

    # ------------------------------------------------------------------ #
    # Check runs on companion PRs                                         #
    # ------------------------------------------------------------------ #

    async def handle_check_run(self, event: CheckRunEvent) -> RemediationRun | None:
        if event.action != "completed" or event.conclusion != "failure":
            return None
        if not self.settings.auto_fix:
            logger.debug("%s: auto-fix disabled, ignoring failed check %s", event.ref.full_name, event.name)
            return None

        for number in event.pr_numbers:
            companion = self.ledger.get(event.ref, number)
            if companion is None:
                continue
            logger.info("%s#%d: check %s failed on companion PR", event.ref.full_name, number, event.name)
            return await asyncio.to_thread(
                self.remediator.attempt_auto_fix, event.ref, number, [event.name], list(companion.tests)
            )
        return None
