"""Autonomous mode: turn generated tests into a companion pull request.

The companion PR is registered in the ledger so that failing CI on it can
later be handed to the remediation loop.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from prguard_core.analyst import Analyst
from prguard_core.collaborators import Companion, CompanionLedger
from prguard_core.config import Settings
from prguard_core.gh.client import GitHubHost, PullRequestRef
from prguard_core.loop_guard import PRODUCT_TAG, TEST_BRANCH_PREFIX
from prguard_core.models import AnalysisRequest, AnalysisResult, GeneratedTest

logger = logging.getLogger(__name__)


def companion_branch_name(number: int, timestamp: int | None = None) -> str:
    ts = int(time.time() * 1000) if timestamp is None else timestamp
    return f"{TEST_BRANCH_PREFIX}{number}-{ts}"


def companion_title(number: int) -> str:
    return f"{PRODUCT_TAG} Automated tests for PR #{number}"


@dataclass
class AutonomousResult:
    tests: list[GeneratedTest] = field(default_factory=list)
    branch: str | None = None
    commit_sha: str | None = None
    pr: PullRequestRef | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.tests) and not self.errors


def _companion_body(request: AnalysisRequest, tests: list[GeneratedTest], output_dir: str) -> str:
    files = "\n".join(f"- `{output_dir}/{t.filename}` ({t.test_type}, {t.framework or 'n/a'})" for t in tests)
    return f"""## 🤖 Automated tests for #{request.number}

Generated by PRGuard from the risk analysis of #{request.number} ({request.title}).

### Files
{files}

If CI fails on this PR, PRGuard will try to fix the tests automatically before asking for a human."""


class AutonomousExecutor:
    def __init__(self, host: GitHubHost, analyst: Analyst, ledger: CompanionLedger, settings: Settings):
        self.host = host
        self.analyst = analyst
        self.ledger = ledger
        self.settings = settings

    def _base(self, request: AnalysisRequest) -> tuple[str, str]:
        if self.settings.base_branch_strategy == "pr-head":
            return self.host.pull_request_head(request.repo_ref, request.number)
        return self.host.default_branch(request.repo_ref)

    def execute(self, request: AnalysisRequest, result: AnalysisResult) -> AutonomousResult:
        """Generate tests, commit them on a fresh branch and open the companion PR.

        Errors are collected on the returned result instead of raised.
        """
        outcome = AutonomousResult()
        ref = request.repo_ref
        try:
            outcome.tests = self.analyst.generate_tests(request, result)
            if not outcome.tests:
                logger.info("%s: no tests generated, nothing to commit", request.ref)
                return outcome

            base_branch, base_sha = self._base(request)
            outcome.branch = companion_branch_name(request.number)
            self.host.create_branch(ref, outcome.branch, base_sha)
            logger.info("%s: created %s from %s", request.ref, outcome.branch, base_branch)

            files = {f"{self.settings.test_output_dir}/{t.filename}": t.code for t in outcome.tests}
            outcome.commit_sha = self.host.commit_files(
                ref, outcome.branch, files, f"test: add generated tests for PR #{request.number}"
            )

            if self.settings.create_pr:
                outcome.pr = self.host.open_pull_request(
                    ref,
                    title=companion_title(request.number),
                    body=_companion_body(request, outcome.tests, self.settings.test_output_dir),
                    head=outcome.branch,
                    base=base_branch,
                )
                self.ledger.register(
                    Companion(
                        ref=ref,
                        number=outcome.pr.number,
                        original_number=request.number,
                        branch=outcome.branch,
                        tests=tuple(outcome.tests),
                    )
                )
                logger.info("%s: opened companion PR #%d", request.ref, outcome.pr.number)
        except Exception as e:
            logger.error("%s: autonomous execution failed: %s", request.ref, e)
            outcome.errors.append(f"{type(e).__name__}: {e}")
        return outcome


def format_autonomous_summary(result: AutonomousResult) -> str:
    lines = ["### 🤖 Autonomous mode", ""]
    if not result.tests and not result.errors:
        lines.append("No tests could be generated for this PR.")
        return "\n".join(lines)

    if result.tests:
        lines.append(f"1. ✅ Generated {len(result.tests)} test file(s)")
        for t in result.tests:
            lines.append(f"   - `{t.filename}` ({t.test_type})")
    if result.branch and result.commit_sha:
        lines.append(f"2. ✅ Committed to branch `{result.branch}` ({result.commit_sha[:7]})")
    if result.pr:
        lines.append(f"3. ✅ Opened [PR #{result.pr.number}]({result.pr.url})")
        lines.append(f"   - Branch: `{result.pr.head_branch}`")
        lines.append("   - Failing CI on that PR is fixed automatically when possible.")
    if result.errors:
        lines += ["", "**Errors:**"]
        lines += [f"- ❌ {e}" for e in result.errors]
    return "\n".join(lines)
