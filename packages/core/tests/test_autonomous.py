"""Tests for companion PR creation in autonomous mode."""

from unittest.mock import MagicMock

import pytest

from prguard_core.autonomous import (
    AutonomousExecutor,
    AutonomousResult,
    companion_branch_name,
    companion_title,
    format_autonomous_summary,
)
from prguard_core.collaborators import InMemoryLedger
from prguard_core.config import Settings
from prguard_core.gh.client import PullRequestRef
from prguard_core.loop_guard import is_self_generated
from prguard_core.models import AnalysisRequest, AnalysisResult, GeneratedTest

TESTS = [GeneratedTest("test_coupon.py", "def test_coupon(): ...", "pytest")]


def _request() -> AnalysisRequest:
    return AnalysisRequest(owner="acme", repo="shop", number=7, title="Add coupons", installation_id=99)


def _result() -> AnalysisResult:
    return AnalysisResult(overall_risk="high", summary="s", risk_score=50, merge_recommendation="attention")


@pytest.fixture
def host():
    host = MagicMock()
    host.default_branch.return_value = ("main", "base-sha")
    host.pull_request_head.return_value = ("feature/coupons", "head-sha")
    host.commit_files.return_value = "commit-sha"
    host.open_pull_request.return_value = PullRequestRef(12, "https://github.com/acme/shop/pull/12", "b")
    return host


@pytest.fixture
def analyst():
    analyst = MagicMock()
    analyst.generate_tests.return_value = list(TESTS)
    return analyst


def _executor(host, analyst, ledger=None, **settings):
    return AutonomousExecutor(host, analyst, ledger or InMemoryLedger(), Settings(autonomous_enabled=True, **settings))


def test_companion_branch_and_title_are_recognised_as_self_generated():
    branch = companion_branch_name(7, timestamp=1700000000000)
    assert branch == "prguard/tests-pr-7-1700000000000"
    assert companion_title(7) == "[PRGuard] Automated tests for PR #7"
    assert is_self_generated(companion_title(7), branch)


def test_companion_branch_defaults_to_current_time():
    assert companion_branch_name(7).startswith("prguard/tests-pr-7-")


class TestExecute:
    def test_full_flow(self, host, analyst, mocker):
        mocker.patch("prguard_core.autonomous.companion_branch_name", return_value="prguard/tests-pr-7-1")
        ledger = InMemoryLedger()

        result = _executor(host, analyst, ledger).execute(_request(), _result())

        assert result.success is True
        assert result.branch == "prguard/tests-pr-7-1"
        assert result.commit_sha == "commit-sha"
        assert result.pr.number == 12
        ref = _request().repo_ref
        host.create_branch.assert_called_once_with(ref, "prguard/tests-pr-7-1", "base-sha")
        host.commit_files.assert_called_once_with(
            ref,
            "prguard/tests-pr-7-1",
            {"tests/generated/test_coupon.py": "def test_coupon(): ..."},
            "test: add generated tests for PR #7",
        )
        kwargs = host.open_pull_request.call_args.kwargs
        assert kwargs["title"] == "[PRGuard] Automated tests for PR #7"
        assert kwargs["head"] == "prguard/tests-pr-7-1"
        assert kwargs["base"] == "main"
        assert "`tests/generated/test_coupon.py`" in kwargs["body"]

        companion = ledger.get(ref, 12)
        assert companion.original_number == 7
        assert companion.branch == "prguard/tests-pr-7-1"
        assert companion.tests == tuple(TESTS)
        assert companion.attempts == 0

    def test_pr_head_strategy(self, host, analyst):
        _executor(host, analyst, base_branch_strategy="pr-head").execute(_request(), _result())
        host.pull_request_head.assert_called_once_with(_request().repo_ref, 7)
        host.default_branch.assert_not_called()
        assert host.open_pull_request.call_args.kwargs["base"] == "feature/coupons"

    def test_without_pr(self, host, analyst):
        ledger = InMemoryLedger()
        result = _executor(host, analyst, ledger, create_pr=False).execute(_request(), _result())
        assert result.commit_sha == "commit-sha"
        assert result.pr is None
        host.open_pull_request.assert_not_called()
        assert ledger.get(_request().repo_ref, 12) is None

    def test_no_tests_generated(self, host, analyst):
        analyst.generate_tests.return_value = []
        result = _executor(host, analyst).execute(_request(), _result())
        assert result.success is False
        assert result.errors == []
        host.create_branch.assert_not_called()

    def test_host_error_collected(self, host, analyst):
        host.create_branch.side_effect = RuntimeError("reference already exists")
        result = _executor(host, analyst).execute(_request(), _result())
        assert result.success is False
        assert result.errors == ["RuntimeError: reference already exists"]
        assert result.tests == TESTS
        host.commit_files.assert_not_called()


class TestFormatAutonomousSummary:
    def test_complete(self):
        result = AutonomousResult(
            tests=list(TESTS),
            branch="prguard/tests-pr-7-1",
            commit_sha="abcdef1234",
            pr=PullRequestRef(12, "https://github.com/acme/shop/pull/12", "prguard/tests-pr-7-1"),
        )
        text = format_autonomous_summary(result)
        assert text.startswith("### 🤖 Autonomous mode")
        assert "1. ✅ Generated 1 test file(s)" in text
        assert "`prguard/tests-pr-7-1` (abcdef1)" in text
        assert "3. ✅ Opened [PR #12](https://github.com/acme/shop/pull/12)" in text
        assert "Errors" not in text

    def test_nothing_generated(self):
        assert "No tests could be generated" in format_autonomous_summary(AutonomousResult())

    def test_errors_listed(self):
        text = format_autonomous_summary(AutonomousResult(tests=list(TESTS), errors=["HostError: denied"]))
        assert "- ❌ HostError: denied" in text
        assert "Opened" not in text
