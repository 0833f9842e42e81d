"""Tests for prguard-store implementations."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from prguard_store.models import AnalysisRecord, CompanionRecord, FindingRecord, GapRecord
from prguard_store.noop import NoOpStore
from prguard_store.sqlite import SQLiteStore


def _make_record(repo="owner/repo", pr_number=1, overall_risk="high", analyzed_at=None):
    return AnalysisRecord(
        repo=repo,
        pr_number=pr_number,
        pr_title="Fix auth bug",
        head_sha="a" * 40,
        analyzed_at=analyzed_at or datetime.now(timezone.utc).isoformat(),
        source="auto",
        overall_risk=overall_risk,
        risk_score=55,
        merge_recommendation="attention",
        health_score=87,
        health_status="healthy",
        summary="Touches the token refresh path.",
        findings=[FindingRecord(level="high", area="security", title="Token leak", description="Logged in clear")],
        gaps=[GapRecord(title="No refresh test", severity="medium")],
    )


def _make_companion(repo="owner/repo", number=11, attempts=0):
    return CompanionRecord(
        repo=repo,
        number=number,
        original_number=10,
        branch="prguard/tests-pr-10-1700000000000",
        tests_json='[{"filename": "test_auth.py", "code": "def test_x(): pass"}]',
        attempts=attempts,
    )


# ---------------------------------------------------------------------------
# NoOpStore
# ---------------------------------------------------------------------------


class TestNoOpStore:
    def test_save_returns_no_id(self):
        assert NoOpStore().save_analysis(_make_record()) is None

    def test_list_analyses_returns_empty(self):
        store = NoOpStore()
        store.save_analysis(_make_record())
        assert store.list_analyses("owner/repo") == []
        assert store.list_analyses("owner/repo", pr_number=1) == []

    def test_companions_kept_in_memory(self):
        store = NoOpStore()
        store.register_companion(_make_companion())
        assert store.get_companion("owner/repo", 11).branch.startswith("prguard/tests-pr-10-")
        assert store.get_companion("owner/repo", 12) is None

    def test_increment_attempts(self):
        store = NoOpStore()
        store.register_companion(_make_companion())
        assert store.increment_attempts("owner/repo", 11) == 1
        assert store.increment_attempts("owner/repo", 11) == 2
        assert store.get_companion("owner/repo", 11).attempts == 2

    def test_increment_unknown_companion_raises(self):
        with pytest.raises(KeyError):
            NoOpStore().increment_attempts("owner/repo", 99)


# ---------------------------------------------------------------------------
# SQLiteStore
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    def test_save_and_list(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        analysis_id = store.save_analysis(_make_record())

        results = store.list_analyses("owner/repo")
        assert len(results) == 1
        assert results[0].id == analysis_id
        assert results[0].repo == "owner/repo"
        assert results[0].risk_score == 55
        assert results[0].health_status == "healthy"
        store.close()

    def test_list_by_pr_number(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save_analysis(_make_record(pr_number=1))
        store.save_analysis(_make_record(pr_number=2))

        results = store.list_analyses("owner/repo", pr_number=1)
        assert len(results) == 1
        assert results[0].pr_number == 1
        store.close()

    def test_list_different_repo_isolated(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save_analysis(_make_record(repo="owner/repo-a"))
        store.save_analysis(_make_record(repo="owner/repo-b"))

        assert len(store.list_analyses("owner/repo-a")) == 1
        assert store.list_analyses("owner/repo-c") == []
        store.close()

    def test_findings_and_gaps_roundtrip(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save_analysis(_make_record())

        record = store.list_analyses("owner/repo")[0]
        assert record.findings == [
            FindingRecord(level="high", area="security", title="Token leak", description="Logged in clear")
        ]
        assert record.gaps == [GapRecord(title="No refresh test", severity="medium")]
        store.close()

    def test_ordered_by_analysis_time(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.save_analysis(_make_record(overall_risk="low", analyzed_at="2026-02-01T00:00:00+00:00"))
        store.save_analysis(_make_record(overall_risk="critical", analyzed_at="2026-01-01T00:00:00+00:00"))

        risks = [r.overall_risk for r in store.list_analyses("owner/repo")]
        assert risks == ["critical", "low"]
        store.close()

    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "test.db")
        store = SQLiteStore(db_path=db)
        store.save_analysis(_make_record())
        store.register_companion(_make_companion())
        store.increment_attempts("owner/repo", 11)
        store.close()

        reopened = SQLiteStore(db_path=db)
        assert len(reopened.list_analyses("owner/repo")) == 1
        assert reopened.get_companion("owner/repo", 11).attempts == 1
        reopened.close()

    def test_register_companion_replaces(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.register_companion(_make_companion(attempts=2))
        store.register_companion(_make_companion(attempts=0))
        assert store.get_companion("owner/repo", 11).attempts == 0
        store.close()

    def test_get_missing_companion(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        assert store.get_companion("owner/repo", 11) is None
        store.close()

    def test_increment_unknown_companion_raises(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        with pytest.raises(KeyError):
            store.increment_attempts("owner/repo", 11)
        store.close()

    def test_usable_from_other_threads(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.register_companion(_make_companion())

        threads = [threading.Thread(target=store.increment_attempts, args=("owner/repo", 11)) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get_companion("owner/repo", 11).attempts == 5
        store.close()
