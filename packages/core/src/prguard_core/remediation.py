"""Bounded auto-fix loop for failing CI on companion test PRs.

The attempt bound is the ledger's persisted counter for the companion, so
repeated check-run failures across webhook deliveries share one budget.
A status of "fixed" means a fix was committed; CI re-runs and a new failure
re-enters the loop against the same counter.
"""

from __future__ import annotations

import logging
import re

from prguard_core.analyst import Analyst
from prguard_core.collaborators import ChatNotifier, Companion, CompanionLedger, LiveUpdates
from prguard_core.effects import best_effort
from prguard_core.gh.client import CheckRunReport, GitHubHost, JobLog
from prguard_core.models import (
    FailureDiagnostic,
    FixPayload,
    GeneratedTest,
    RemediationAttempt,
    RemediationRun,
    RepoRef,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

_ERROR_RE = re.compile(r"(?:Error|FAIL|error):\s*(.+?)(?:\n|$)")
_MAX_ERROR_LENGTH = 500


def extract_error_message(text: str) -> str:
    match = _ERROR_RE.search(text)
    if match:
        return match.group(1).strip()[:_MAX_ERROR_LENGTH]
    first = next((line.strip() for line in text.splitlines() if line.strip()), "")
    return first[:_MAX_ERROR_LENGTH] or "Unknown error"


def _from_report(report: CheckRunReport) -> FailureDiagnostic | None:
    if report.annotations:
        logs = "\n".join(report.annotations)
        return FailureDiagnostic(
            check_name=report.name,
            error_message=extract_error_message(logs),
            logs=logs,
            failed_tests=report.failed_paths,
        )
    output = "\n\n".join(part for part in (report.summary, report.text) if part)
    if output:
        return FailureDiagnostic(check_name=report.name, error_message=extract_error_message(output), logs=output)
    return None


def _from_job_log(name: str, job_logs: list[JobLog]) -> FailureDiagnostic | None:
    job = next((j for j in job_logs if j.name == name), None) or next(iter(job_logs), None)
    if job is None or not job.log.strip():
        return None
    return FailureDiagnostic(check_name=name, error_message=extract_error_message(job.log), logs=job.log)


def collect_failure_diagnostics(
    host: GitHubHost, ref: RepoRef, head_sha: str, failed_checks: list[str]
) -> list[FailureDiagnostic]:
    """Diagnostics for each failed check.

    Sources are tried in order: check-run annotations, the check-run output,
    then the tail of the failed Actions job logs for the commit. A check with
    nothing from any source is left out.
    """
    reports = {r.name: r for r in host.failed_check_runs(ref, head_sha)}
    names = list(failed_checks) or list(reports)
    job_logs: list[JobLog] | None = None

    diagnostics = []
    for name in names:
        report = reports.get(name)
        diagnostic = _from_report(report) if report else None
        if diagnostic is None:
            if job_logs is None:
                job_logs = host.failed_job_logs(ref, head_sha)
            diagnostic = _from_job_log(name, job_logs)
        if diagnostic is not None:
            diagnostics.append(diagnostic)
    return diagnostics


def _fix_comment(fix: FixPayload, attempt: int, max_attempts: int) -> str:
    analysis = f"\n\n**Diagnosis:** {fix.analysis}" if fix.analysis else ""
    return f"""## 🔧 Auto-fix applied (attempt {attempt}/{max_attempts})

PRGuard detected a CI failure and committed a corrected test file.

- File: `{fix.test.filename}`
- Framework: {fix.test.framework or "n/a"}{analysis}

CI will re-run. If it fails again PRGuard retries until the attempt budget is used."""


def apply_fix(
    host: GitHubHost, companion: Companion, fix: FixPayload, output_dir: str, attempt: int, max_attempts: int
) -> str:
    """Commit the fixed test to the companion branch and say so on the PR."""
    path = f"{output_dir}/{fix.test.filename}"
    message = f"test: auto-fix {fix.test.filename} (attempt {attempt})"
    sha = host.commit_files(companion.ref, companion.branch, {path: fix.test.code}, message)
    host.post_comment(companion.ref, companion.number, _fix_comment(fix, attempt, max_attempts))
    return sha


class Remediator:
    def __init__(
        self,
        host: GitHubHost,
        analyst: Analyst,
        ledger: CompanionLedger,
        chat: ChatNotifier,
        live: LiveUpdates,
        output_dir: str = "tests/generated",
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.host = host
        self.analyst = analyst
        self.ledger = ledger
        self.chat = chat
        self.live = live
        self.output_dir = output_dir
        self.max_attempts = max_attempts

    def _attempt(
        self, companion: Companion, number: int, failed_checks: list[str], original_tests: list[GeneratedTest]
    ) -> tuple[RemediationAttempt, bool]:
        """Run one attempt. The flag is True when diagnostics were empty."""
        try:
            _, head_sha = self.host.pull_request_head(companion.ref, companion.number)
            diagnostics = collect_failure_diagnostics(self.host, companion.ref, head_sha, failed_checks)
            if not diagnostics:
                return RemediationAttempt(number, None, False, "Could not retrieve CI failure details"), True
            fix = self.analyst.request_fix(diagnostics, original_tests)
            if fix is None:
                return RemediationAttempt(number, None, False, "No fix generated"), False
            apply_fix(self.host, companion, fix, self.output_dir, number, self.max_attempts)
            return RemediationAttempt(number, fix, True), False
        except Exception as e:
            logger.warning(
                "%s#%d: auto-fix attempt %d failed: %s", companion.ref.full_name, companion.number, number, e
            )
            return RemediationAttempt(number, None, False, f"{type(e).__name__}: {e}"), False

    def attempt_auto_fix(
        self,
        ref: RepoRef,
        companion_number: int,
        failed_checks: list[str],
        original_tests: list[GeneratedTest] | None = None,
    ) -> RemediationRun:
        """Retry fixes until one is committed or no further attempt can help.

        A fixed run has already commented on the companion PR through
        apply_fix; any other terminal status posts the attempt table there.
        """
        run = RemediationRun(max_attempts=self.max_attempts)
        companion = self.ledger.get(ref, companion_number)
        if companion is None:
            run.message = f"#{companion_number} is not a companion test PR."
            logger.info("%s#%d: no companion record, skipping auto-fix", ref.full_name, companion_number)
            return run
        tests = list(original_tests) if original_tests is not None else list(companion.tests)

        used = companion.attempts
        if used >= self.max_attempts:
            run.message = f"Auto-fix budget of {self.max_attempts} attempts already used. Human intervention required."
            logger.info("%s#%d: %s", ref.full_name, companion_number, run.message)
            self._notify(companion, run, used)
            return run

        # Attempts are numbered by the ledger total, shared by concurrent deliveries.
        number = used
        while number < self.max_attempts:
            number = self.ledger.increment_attempts(ref, companion_number)
            if number > self.max_attempts:
                logger.info("%s#%d: budget used up by a concurrent run", ref.full_name, companion_number)
                break
            attempt, unfixable = self._attempt(companion, number, failed_checks, tests)
            run.record(attempt)
            if unfixable:
                run.status = "unfixable"
                run.message = "Could not retrieve CI logs."
                break
            if attempt.success:
                run.status = "fixed"
                run.message = f"Fix applied on attempt {number}. CI will re-run."
                break
        if run.status == "needs_human":
            run.message = f"Auto-fix failed after {self.max_attempts} attempts. Human intervention required."

        logger.info("%s#%d: auto-fix finished (%s)", ref.full_name, companion_number, run.status)
        if run.status != "fixed":
            best_effort(
                "post remediation summary",
                self.host.post_comment,
                companion.ref,
                companion.number,
                format_remediation_summary(run),
            )
        self._notify(companion, run, min(number, self.max_attempts))
        return run

    def _notify(self, companion: Companion, run: RemediationRun, total_attempts: int) -> None:
        success = run.status == "fixed"
        best_effort(
            "chat remediation result",
            self.chat.send_remediation_result,
            companion.ref,
            companion.number,
            total_attempts,
            success,
            run.message,
        )
        best_effort(
            "live remediation notification",
            self.live.notification,
            "auto_fix" if success else "auto_fix_failed",
            f"Auto-fix {run.status} on #{companion.number}",
            run.message,
            {"repo": companion.ref.full_name, "pr": companion.number, "attempts": total_attempts},
        )


def format_remediation_summary(run: RemediationRun) -> str:
    lines = ["### 🔧 Auto-fix status", ""]
    if run.status == "fixed":
        lines += ["✅ **Fix applied**", f"- Attempts: {len(run.attempts)}"]
    else:
        lines += [
            "❌ **Auto-fix failed**",
            f"- Attempts: {len(run.attempts)}/{run.max_attempts}",
            f"- Status: {run.status}",
        ]
    lines += ["", run.message]

    if run.attempts:
        lines += ["", "| Attempt | Result | Details |", "|---------|--------|---------|"]
        for a in run.attempts:
            details = a.error or (f"Fixed {a.fix.test.filename}" if a.fix else "No fix generated")
            lines.append(f"| {a.number} | {'✅' if a.success else '❌'} | {details} |")
    return "\n".join(lines)
