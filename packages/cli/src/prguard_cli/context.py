"""Helpers shared by CLI commands for reading the click context."""

from __future__ import annotations

import click

from prguard_core.config import Settings
from prguard_core.errors import ConfigError
from prguard_store.base import BaseStore


def get_settings(ctx: click.Context) -> Settings:
    try:
        return Settings.from_config(ctx.obj["config"])
    except ConfigError as e:
        raise click.UsageError(str(e)) from e


def get_store(ctx: click.Context) -> BaseStore:
    return ctx.obj["store"]


def get_auth(ctx: click.Context) -> str | None:
    """The auth mode picked by the group: "app", "token" or None."""
    return ctx.obj.get("auth")


def split_repo(repo: str) -> tuple[str, str]:
    owner, sep, name = repo.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise click.BadParameter(f"expected owner/name, got {repo!r}", param_hint="--repo")
    return owner, name
