"""Trigger mode resolution.

  auto    → analyse every PR event, record it and comment on the PR
  hybrid  → analyse every PR event and record it, comment only on command
  command → PR events are ignored, analysis runs only on command
"""

from __future__ import annotations

import logging

from prguard_core.errors import ConfigError
from prguard_core.models import TriggerDecision

logger = logging.getLogger(__name__)

TRIGGER_MODES = ("auto", "hybrid", "command")

_DECISIONS = {
    "auto": (True, True),
    "hybrid": (True, False),
    "command": (False, False),
}


def resolve_trigger(mode: str) -> TriggerDecision:
    try:
        analyze, comment = _DECISIONS[mode]
    except (KeyError, TypeError):
        raise ConfigError(f"Unknown trigger mode: {mode!r}. Choose one of {', '.join(TRIGGER_MODES)}.")
    return TriggerDecision(should_analyze_dashboard=analyze, should_comment_on_pr=comment, mode=mode)


def enforce_hybrid_mode_at_startup(mode: str, strict: bool = False) -> None:
    """Check at startup that every PR will be recorded.

    Only hybrid guarantees history coverage for all PRs without flooding them
    with comments. With ``strict`` a different mode refuses to start.
    """
    resolve_trigger(mode)
    if mode == "hybrid":
        logger.info("Trigger mode is hybrid: every PR is recorded, comments only on command.")
        return
    if strict:
        raise ConfigError(f"Trigger mode must be 'hybrid' when trigger_strict is set (got {mode!r}).")
    logger.warning("Trigger mode is %r, not hybrid. History coverage for all PRs is not guaranteed.", mode)
