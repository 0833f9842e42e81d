"""Abstract store interface.

The server and CLI depend on BaseStore, not on a concrete backend, so
backends are swappable without touching either.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prguard_store.models import AnalysisRecord, CompanionRecord


class BaseStore(ABC):
    """Pluggable persistence for analysis history and companion PRs.

    Implementations are called from worker threads; they must tolerate
    calls from a thread other than the one that created them.
    """

    @abstractmethod
    def save_analysis(self, record: AnalysisRecord) -> str | None:
        """Persist a completed analysis and return its new id, or None when nothing was stored."""

    @abstractmethod
    def list_analyses(self, repo: str, pr_number: int | None = None) -> list[AnalysisRecord]:
        """Return analyses for a repo, oldest first, optionally filtered by PR number.

        Returns an empty list if none exist.
        """

    @abstractmethod
    def register_companion(self, record: CompanionRecord) -> None:
        """Insert or replace the companion record for (repo, number)."""

    @abstractmethod
    def get_companion(self, repo: str, number: int) -> CompanionRecord | None: ...

    @abstractmethod
    def increment_attempts(self, repo: str, number: int) -> int:
        """Add one auto-fix attempt and return the new total.

        Raises KeyError when no companion is registered for (repo, number).
        """

    def close(self) -> None:
        """Release any resources held by the store.

        Default is a no-op so callers can always call close() safely.
        """
