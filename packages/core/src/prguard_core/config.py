from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from prguard_core.errors import ConfigError
from prguard_core.trigger import TRIGGER_MODES

DEFAULT_CONFIG: dict = {
    "trigger": "hybrid",
    "trigger_strict": False,
    "model": "anthropic",
    "model_name": None,  # None = provider default
    "test_output_dir": "tests/generated",
    "store": "noop",
    "store_path": ".prguard.db",
    "base_url": None,  # public URL of the server, used for links in chat messages
    "coverage": {
        "enabled": True,
        "min_threshold": 80,
    },
    "autonomous": {
        "enabled": False,
        "create_pr": True,
        "auto_fix": True,
        "max_fix_attempts": 3,
        "base_branch_strategy": "default",  # "default" | "pr-head"
    },
    "notifications": {
        "slack": {
            "enabled": False,
            "webhook_url": "",
        },
    },
    "actions": {
        # follow-ups on an auto comment when autonomous mode is off
        "generate_tests": False,
        "create_issues": False,
        "create_tasks": False,
        "issue_labels": ["prguard", "qa"],
    },
    "governance": {
        "force_block": False,
    },
    "feedback": {
        "hints": [],
    },
}

_PROVIDERS = ("anthropic", "openai")
_BASE_BRANCH_STRATEGIES = ("default", "pr-head")


def _deep_merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: str = ".prguard.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prguard.yml in the current directory (nested sections are merged key by key)
      3. CLI argument overrides
      4. Credentials from environment variables
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping at the top level.")
        _deep_merge(config, file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["github_app_id"] = os.environ.get("GITHUB_APP_ID")
    config["github_private_key"] = os.environ.get("GITHUB_PRIVATE_KEY")
    config["webhook_secret"] = os.environ.get("GITHUB_WEBHOOK_SECRET")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    slack = config["notifications"]["slack"]
    webhook = slack.get("webhook_url") or ""
    if not webhook or webhook == "${SLACK_WEBHOOK_URL}":
        slack["webhook_url"] = os.environ.get("SLACK_WEBHOOK_URL", "")

    return config


@dataclass(frozen=True)
class Settings:
    """Validated, immutable configuration threaded through a run.

    Built once at startup from the merged config dict; components read
    fields from here instead of reaching into nested dicts.
    """

    trigger: str = "hybrid"
    trigger_strict: bool = False
    model: str = "anthropic"
    model_name: str | None = None
    test_output_dir: str = "tests/generated"
    base_url: str | None = None
    coverage_enabled: bool = True
    coverage_min_threshold: int = 80
    autonomous_enabled: bool = False
    create_pr: bool = True
    auto_fix: bool = True
    max_fix_attempts: int = 3
    base_branch_strategy: str = "default"
    slack_enabled: bool = False
    slack_webhook_url: str = ""
    auto_generate_tests: bool = False
    auto_create_issues: bool = False
    auto_create_tasks: bool = False
    issue_labels: tuple[str, ...] = ("prguard", "qa")
    force_block: bool = False
    feedback_hints: tuple[str, ...] = ()
    github_token: str | None = None
    github_app_id: str | None = None
    github_private_key: str | None = None
    webhook_secret: str | None = None
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None

    @classmethod
    def from_config(cls, config: dict) -> Settings:
        trigger = config.get("trigger", "hybrid")
        if trigger not in TRIGGER_MODES:
            raise ConfigError(f"Unknown trigger mode: {trigger!r}. Choose one of {', '.join(TRIGGER_MODES)}.")
        model = config.get("model", "anthropic")
        if model not in _PROVIDERS:
            raise ConfigError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")

        coverage = config.get("coverage") or {}
        autonomous = config.get("autonomous") or {}
        slack = (config.get("notifications") or {}).get("slack") or {}
        actions = config.get("actions") or {}
        governance = config.get("governance") or {}
        feedback = config.get("feedback") or {}

        strategy = autonomous.get("base_branch_strategy", "default")
        if strategy not in _BASE_BRANCH_STRATEGIES:
            raise ConfigError(f"Unknown base_branch_strategy: {strategy!r}. Choose 'default' or 'pr-head'.")
        max_attempts = int(autonomous.get("max_fix_attempts", 3))
        if max_attempts < 1:
            raise ConfigError("autonomous.max_fix_attempts must be at least 1.")

        return cls(
            trigger=trigger,
            trigger_strict=bool(config.get("trigger_strict", False)),
            model=model,
            model_name=config.get("model_name"),
            test_output_dir=str(config.get("test_output_dir") or "tests/generated").rstrip("/"),
            base_url=config.get("base_url"),
            coverage_enabled=bool(coverage.get("enabled", True)),
            coverage_min_threshold=int(coverage.get("min_threshold", 80)),
            autonomous_enabled=bool(autonomous.get("enabled", False)),
            create_pr=bool(autonomous.get("create_pr", True)),
            auto_fix=bool(autonomous.get("auto_fix", True)),
            max_fix_attempts=max_attempts,
            base_branch_strategy=strategy,
            slack_enabled=bool(slack.get("enabled", False)),
            slack_webhook_url=slack.get("webhook_url") or "",
            auto_generate_tests=bool(actions.get("generate_tests", False)),
            auto_create_issues=bool(actions.get("create_issues", False)),
            auto_create_tasks=bool(actions.get("create_tasks", False)),
            issue_labels=tuple(actions.get("issue_labels") or ()),
            force_block=bool(governance.get("force_block", False)),
            feedback_hints=tuple(feedback.get("hints") or ()),
            github_token=config.get("github_token"),
            github_app_id=config.get("github_app_id"),
            github_private_key=config.get("github_private_key"),
            webhook_secret=config.get("webhook_secret"),
            anthropic_api_key=config.get("anthropic_api_key"),
            openai_api_key=config.get("openai_api_key"),
        )
