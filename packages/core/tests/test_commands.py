"""Tests for slash-command parsing."""

import pytest

from prguard_core.commands import COMMAND_PREFIX, help_message, parse_command


@pytest.mark.parametrize(
    "body, kind",
    [
        ("/prguard analyze", "analyze"),
        ("/prguard analysis", "analyze"),
        ("  /PRGuard Analyze please  ", "analyze"),
        ("/prguard generate tests", "generate-tests"),
        ("/prguard generate-tests", "generate-tests"),
        ("/prguard gen tests", "generate-tests"),
        ("/prguard tests", "generate-tests"),
        ("/prguard help", "help"),
        ("/prguard helper", "help"),
        ("/prguard", "help"),
        ("/prguard   ", "help"),
    ],
)
def test_recognised_commands(body, kind):
    assert parse_command(body).kind == kind


@pytest.mark.parametrize(
    "body",
    [
        None,
        "",
        "LGTM",
        "please run /prguard analyze",
        "/prguard deploy",
        "/other analyze",
    ],
)
def test_non_commands(body):
    assert parse_command(body) is None


def test_help_lists_every_command():
    text = help_message()
    for sub in ("analyze", "generate tests", "help", "analysis", "gen tests", "helper"):
        assert f"`{COMMAND_PREFIX} {sub}`" in text
