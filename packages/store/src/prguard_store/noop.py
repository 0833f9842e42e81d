"""No-op store, the default when no store is configured.

Analyses are posted to GitHub but not persisted. Companion records are
kept in memory for the life of the process, since the auto-fix loop needs
them to recognise its own PRs.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING

from prguard_store.base import BaseStore

if TYPE_CHECKING:
    from prguard_store.models import AnalysisRecord, CompanionRecord


class NoOpStore(BaseStore):
    def __init__(self):
        self._companions: dict[tuple[str, int], CompanionRecord] = {}
        self._lock = threading.Lock()

    def save_analysis(self, record: AnalysisRecord) -> str | None:
        return None

    def list_analyses(self, repo: str, pr_number: int | None = None) -> list[AnalysisRecord]:
        return []

    def register_companion(self, record: CompanionRecord) -> None:
        with self._lock:
            self._companions[(record.repo, record.number)] = record

    def get_companion(self, repo: str, number: int) -> CompanionRecord | None:
        with self._lock:
            return self._companions.get((repo, number))

    def increment_attempts(self, repo: str, number: int) -> int:
        with self._lock:
            record = self._companions[(repo, number)]
            record = replace(record, attempts=record.attempts + 1)
            self._companions[(repo, number)] = record
            return record.attempts
