"""Slash commands posted as PR comments.

  /prguard analyze         run the analysis and comment the result
  /prguard generate tests  generate tests and open a companion PR
  /prguard help            list the commands
"""

from __future__ import annotations

from prguard_core.models import Command

COMMAND_PREFIX = "/prguard"

_ALIASES: tuple[tuple[str, str], ...] = (
    ("analyze", "analyze"),
    ("analysis", "analyze"),
    ("generate tests", "generate-tests"),
    ("generate-tests", "generate-tests"),
    ("gen tests", "generate-tests"),
    ("tests", "generate-tests"),
    ("helper", "help"),
    ("help", "help"),
)


def parse_command(body: str | None) -> Command | None:
    """Return the command in a comment body, or None when there is none.

    Matching is case-insensitive and ignores surrounding whitespace. Anything
    after a recognised subcommand is ignored.
    """
    if not body:
        return None
    text = body.strip().lower()
    if not text.startswith(COMMAND_PREFIX):
        return None
    if text == COMMAND_PREFIX:
        return Command(kind="help")
    for alias, kind in _ALIASES:
        if text.startswith(f"{COMMAND_PREFIX} {alias}"):
            return Command(kind=kind)
    return None


def help_message() -> str:
    p = COMMAND_PREFIX
    return f"""## PRGuard commands

| Command | Description |
|---------|-------------|
| `{p} analyze` | Analyse the PR for risks, test scenarios and gaps |
| `{p} generate tests` | Generate automated tests and open a PR with them |
| `{p} help` | Show this message |

### Aliases

| Command | Alias for |
|---------|-----------|
| `{p} analysis` | `{p} analyze` |
| `{p} gen tests` | `{p} generate tests` |
| `{p} tests` | `{p} generate tests` |
| `{p} helper` | `{p} help` |

After reviewing the analysis you can generate the tests:

```
{p} generate tests
```
"""
