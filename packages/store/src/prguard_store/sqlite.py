"""SQLiteStore, a local file-based store for analysis history.

Schema:
  analyses    one row per completed analysis; findings and gaps are kept as
              JSON columns so read paths need no JOINs.
  companions  one row per generated-tests PR, with its original tests and
              the auto-fix attempt counter.

The connection is shared across worker threads and guarded by a lock.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid

from prguard_store.base import BaseStore
from prguard_store.models import AnalysisRecord, CompanionRecord, FindingRecord, GapRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS analyses (
    id                    TEXT PRIMARY KEY,
    repo                  TEXT NOT NULL,
    pr_number             INTEGER NOT NULL,
    pr_title              TEXT,
    head_sha              TEXT,
    analyzed_at           TEXT,
    source                TEXT,
    overall_risk          TEXT,
    risk_score            INTEGER DEFAULT 0,
    merge_recommendation  TEXT,
    health_score          INTEGER DEFAULT 100,
    health_status         TEXT,
    summary               TEXT,
    findings_json         TEXT DEFAULT '[]',
    gaps_json             TEXT DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_analyses_repo ON analyses (repo);
CREATE INDEX IF NOT EXISTS idx_analyses_pr   ON analyses (repo, pr_number);

CREATE TABLE IF NOT EXISTS companions (
    repo             TEXT NOT NULL,
    number           INTEGER NOT NULL,
    original_number  INTEGER NOT NULL,
    branch           TEXT NOT NULL,
    tests_json       TEXT DEFAULT '[]',
    attempts         INTEGER DEFAULT 0,
    PRIMARY KEY (repo, number)
);
"""


class SQLiteStore(BaseStore):
    """Stores analysis history in a local SQLite database file.

    The database file path defaults to `.prguard.db` in the current working
    directory. Configure via .prguard.yml: `store_path: /path/to/prguard.db`.
    """

    def __init__(self, db_path: str = ".prguard.db"):
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save_analysis(self, record: AnalysisRecord) -> str:
        analysis_id = uuid.uuid4().hex
        findings_json = json.dumps(
            [
                {"level": f.level, "area": f.area, "title": f.title, "description": f.description}
                for f in record.findings
            ]
        )
        gaps_json = json.dumps([{"title": g.title, "severity": g.severity} for g in record.gaps])
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO analyses
                  (id, repo, pr_number, pr_title, head_sha, analyzed_at, source,
                   overall_risk, risk_score, merge_recommendation, health_score,
                   health_status, summary, findings_json, gaps_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    analysis_id,
                    record.repo,
                    record.pr_number,
                    record.pr_title,
                    record.head_sha,
                    record.analyzed_at,
                    record.source,
                    record.overall_risk,
                    record.risk_score,
                    record.merge_recommendation,
                    record.health_score,
                    record.health_status,
                    record.summary,
                    findings_json,
                    gaps_json,
                ),
            )
            self._conn.commit()
        logger.debug("Saved analysis %s for %s#%d", analysis_id, record.repo, record.pr_number)
        return analysis_id

    def list_analyses(self, repo: str, pr_number: int | None = None) -> list[AnalysisRecord]:
        with self._lock:
            if pr_number is not None:
                rows = self._conn.execute(
                    "SELECT * FROM analyses WHERE repo=? AND pr_number=? ORDER BY analyzed_at",
                    (repo, pr_number),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM analyses WHERE repo=? ORDER BY analyzed_at",
                    (repo,),
                ).fetchall()

        return [self._row_to_record(r) for r in rows]

    def register_companion(self, record: CompanionRecord) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO companions
                  (repo, number, original_number, branch, tests_json, attempts)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (record.repo, record.number, record.original_number, record.branch, record.tests_json, record.attempts),
            )
            self._conn.commit()

    def get_companion(self, repo: str, number: int) -> CompanionRecord | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM companions WHERE repo=? AND number=?", (repo, number)).fetchone()
        if row is None:
            return None
        return CompanionRecord(
            repo=row["repo"],
            number=row["number"],
            original_number=row["original_number"],
            branch=row["branch"],
            tests_json=row["tests_json"] or "[]",
            attempts=row["attempts"],
        )

    def increment_attempts(self, repo: str, number: int) -> int:
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE companions SET attempts = attempts + 1 WHERE repo=? AND number=?", (repo, number)
            )
            if cursor.rowcount == 0:
                self._conn.rollback()
                raise KeyError(f"{repo}#{number} is not a registered companion")
            self._conn.commit()
            row = self._conn.execute(
                "SELECT attempts FROM companions WHERE repo=? AND number=?", (repo, number)
            ).fetchone()
        return row["attempts"]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> AnalysisRecord:
        findings = [
            FindingRecord(
                level=f.get("level", "medium"),
                area=f.get("area", ""),
                title=f.get("title", ""),
                description=f.get("description", ""),
            )
            for f in json.loads(row["findings_json"] or "[]")
        ]
        gaps = [
            GapRecord(title=g.get("title", ""), severity=g.get("severity", "medium"))
            for g in json.loads(row["gaps_json"] or "[]")
        ]
        return AnalysisRecord(
            id=row["id"],
            repo=row["repo"],
            pr_number=row["pr_number"],
            pr_title=row["pr_title"] or "",
            head_sha=row["head_sha"] or "",
            analyzed_at=row["analyzed_at"] or "",
            source=row["source"] or "auto",
            overall_risk=row["overall_risk"] or "medium",
            risk_score=row["risk_score"],
            merge_recommendation=row["merge_recommendation"] or "attention",
            health_score=row["health_score"],
            health_status=row["health_status"] or "",
            summary=row["summary"] or "",
            findings=findings,
            gaps=gaps,
        )
