"""Best-effort side effects.

A run has one critical path (fetch, analyse, report). Everything around it,
persistence, live events, chat messages, labels, must not be able to fail
the run, so each such step goes through run_effect and leaves an EffectResult
behind for the run report.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectResult:
    step: str
    ok: bool
    value: Any = None
    error: str | None = None


def best_effort(step: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> EffectResult:
    try:
        return EffectResult(step=step, ok=True, value=fn(*args, **kwargs))
    except Exception as e:
        logger.warning("%s failed (%s): %s", step, type(e).__name__, e)
        return EffectResult(step=step, ok=False, error=f"{type(e).__name__}: {e}")


async def run_effect(step: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> EffectResult:
    """best_effort for blocking callables, run in a worker thread."""
    return await asyncio.to_thread(best_effort, step, fn, *args, **kwargs)
