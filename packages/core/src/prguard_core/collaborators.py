"""Interfaces the orchestrator talks to for everything outside the analysis.

Concrete backends live elsewhere (prguard_store for persistence,
prguard_server for live updates, prguard_core.notify for chat). The null
implementations here are the defaults so the orchestrator can always call
through without conditional checks.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any

from prguard_core.models import AnalysisOutcome, GeneratedTest, RepoRef


class AnalysisSink(ABC):
    @abstractmethod
    def save(self, outcome: AnalysisOutcome) -> str | None:
        """Persist an analysis outcome and return its id."""


class NullSink(AnalysisSink):
    def save(self, outcome: AnalysisOutcome) -> str | None:
        return None


class LiveUpdates(ABC):
    """Push channel for dashboards. Implementations must not block."""

    @abstractmethod
    def analysis_started(self, data: dict[str, Any]) -> None: ...

    @abstractmethod
    def analysis_updated(self, data: dict[str, Any]) -> None: ...

    @abstractmethod
    def notification(self, kind: str, title: str, message: str, data: dict[str, Any] | None = None) -> None: ...


class NullLiveUpdates(LiveUpdates):
    def analysis_started(self, data: dict[str, Any]) -> None:
        pass

    def analysis_updated(self, data: dict[str, Any]) -> None:
        pass

    def notification(self, kind: str, title: str, message: str, data: dict[str, Any] | None = None) -> None:
        pass


class ChatNotifier(ABC):
    """Team chat messages. Each method returns whether the message was delivered."""

    @abstractmethod
    def send_action_report(self, outcome: AnalysisOutcome, analysis_id: str | None, actions: list[str]) -> bool: ...

    @abstractmethod
    def send_critical_alert(self, outcome: AnalysisOutcome) -> bool: ...

    @abstractmethod
    def send_remediation_result(
        self, ref: RepoRef, number: int, attempts: int, success: bool, message: str
    ) -> bool: ...


class NullNotifier(ChatNotifier):
    def send_action_report(self, outcome: AnalysisOutcome, analysis_id: str | None, actions: list[str]) -> bool:
        return False

    def send_critical_alert(self, outcome: AnalysisOutcome) -> bool:
        return False

    def send_remediation_result(self, ref: RepoRef, number: int, attempts: int, success: bool, message: str) -> bool:
        return False


@dataclass(frozen=True)
class Companion:
    """A generated-tests PR opened by prguard for another change."""

    ref: RepoRef
    number: int
    original_number: int
    branch: str
    tests: tuple[GeneratedTest, ...] = ()
    attempts: int = 0


class CompanionLedger(ABC):
    """Durable record of companion PRs and how many auto-fix attempts each has used."""

    @abstractmethod
    def register(self, companion: Companion) -> None: ...

    @abstractmethod
    def get(self, ref: RepoRef, number: int) -> Companion | None: ...

    @abstractmethod
    def increment_attempts(self, ref: RepoRef, number: int) -> int:
        """Record one more attempt and return the new total."""


class InMemoryLedger(CompanionLedger):
    def __init__(self):
        self._companions: dict[tuple[str, int], Companion] = {}
        self._lock = threading.Lock()

    def register(self, companion: Companion) -> None:
        with self._lock:
            self._companions[(companion.ref.full_name, companion.number)] = companion

    def get(self, ref: RepoRef, number: int) -> Companion | None:
        with self._lock:
            return self._companions.get((ref.full_name, number))

    def increment_attempts(self, ref: RepoRef, number: int) -> int:
        key = (ref.full_name, number)
        with self._lock:
            companion = self._companions[key]
            companion = replace(companion, attempts=companion.attempts + 1)
            self._companions[key] = companion
            return companion.attempts
