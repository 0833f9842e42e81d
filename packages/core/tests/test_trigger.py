"""Tests for trigger mode resolution."""

import logging

import pytest

from prguard_core.errors import ConfigError
from prguard_core.trigger import enforce_hybrid_mode_at_startup, resolve_trigger


@pytest.mark.parametrize(
    "mode, analyze, comment",
    [
        ("auto", True, True),
        ("hybrid", True, False),
        ("command", False, False),
    ],
)
def test_decision_table(mode, analyze, comment):
    decision = resolve_trigger(mode)
    assert decision.should_analyze_dashboard is analyze
    assert decision.should_comment_on_pr is comment
    assert decision.mode == mode


def test_comment_never_without_analysis():
    for mode in ("auto", "hybrid", "command"):
        decision = resolve_trigger(mode)
        assert not (decision.should_comment_on_pr and not decision.should_analyze_dashboard)


@pytest.mark.parametrize("mode", ["Auto", "always", "", None])
def test_unknown_mode_rejected(mode):
    with pytest.raises(ConfigError):
        resolve_trigger(mode)


class TestEnforceHybridMode:
    def test_hybrid_logs_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="prguard_core.trigger"):
            enforce_hybrid_mode_at_startup("hybrid")
        assert "hybrid" in caplog.text
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_other_mode_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="prguard_core.trigger"):
            enforce_hybrid_mode_at_startup("auto")
        assert "not hybrid" in caplog.text

    def test_other_mode_strict_raises(self):
        with pytest.raises(ConfigError, match="hybrid"):
            enforce_hybrid_mode_at_startup("command", strict=True)

    def test_unknown_mode_raises_even_when_lenient(self):
        with pytest.raises(ConfigError):
            enforce_hybrid_mode_at_startup("nope")
