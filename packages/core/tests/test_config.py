"""Tests for configuration loading and Settings validation."""

import pytest

from prguard_core.config import DEFAULT_CONFIG, Settings, load_config
from prguard_core.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "GITHUB_TOKEN",
        "GITHUB_APP_ID",
        "GITHUB_PRIVATE_KEY",
        "GITHUB_WEBHOOK_SECRET",
        "ANTHROPIC_API_KEY",
        "OPENAI_API_KEY",
        "SLACK_WEBHOOK_URL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_applied_when_no_config_file(tmp_path):
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["trigger"] == "hybrid"
    assert config["model"] == "anthropic"
    assert config["coverage"] == {"enabled": True, "min_threshold": 80}
    assert config["autonomous"]["enabled"] is False
    assert config["autonomous"]["max_fix_attempts"] == 3


def test_defaults_not_mutated(tmp_path):
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("autonomous:\n  enabled: true\n")
    load_config(config_path=str(cfg))
    assert DEFAULT_CONFIG["autonomous"]["enabled"] is False


def test_nested_sections_merged_key_by_key(tmp_path):
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("autonomous:\n  enabled: true\ncoverage:\n  min_threshold: 60\n")
    config = load_config(config_path=str(cfg))
    assert config["autonomous"]["enabled"] is True
    assert config["autonomous"]["create_pr"] is True
    assert config["coverage"] == {"enabled": True, "min_threshold": 60}


def test_cli_overrides_config_file(tmp_path):
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": "anthropic"})
    assert config["model"] == "anthropic"


def test_none_cli_overrides_ignored(tmp_path):
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("model: openai\n")
    config = load_config(config_path=str(cfg), cli_overrides={"model": None})
    assert config["model"] == "openai"


def test_empty_file_uses_defaults(tmp_path):
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("")
    assert load_config(config_path=str(cfg))["trigger"] == "hybrid"


def test_non_mapping_file_rejected(tmp_path):
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(config_path=str(cfg))


def test_credentials_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_x")
    monkeypatch.setenv("GITHUB_WEBHOOK_SECRET", "s3cret")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    config = load_config(config_path=str(tmp_path / "nonexistent.yml"))
    assert config["github_token"] == "ghp_x"
    assert config["webhook_secret"] == "s3cret"
    assert config["anthropic_api_key"] == "sk-ant"


def test_slack_placeholder_resolved_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.com/services/x")
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("notifications:\n  slack:\n    enabled: true\n    webhook_url: ${SLACK_WEBHOOK_URL}\n")
    config = load_config(config_path=str(cfg))
    assert config["notifications"]["slack"]["webhook_url"] == "https://hooks.slack.com/services/x"


def test_explicit_slack_url_kept(tmp_path, monkeypatch):
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.com/services/env")
    cfg = tmp_path / ".prguard.yml"
    cfg.write_text("notifications:\n  slack:\n    webhook_url: https://hooks.slack.com/services/file\n")
    config = load_config(config_path=str(cfg))
    assert config["notifications"]["slack"]["webhook_url"] == "https://hooks.slack.com/services/file"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_from_default_config(self, tmp_path):
        settings = Settings.from_config(load_config(config_path=str(tmp_path / "none.yml")))
        assert settings.trigger == "hybrid"
        assert settings.coverage_enabled is True
        assert settings.max_fix_attempts == 3
        assert settings.base_branch_strategy == "default"
        assert settings.feedback_hints == ()
        assert settings.auto_generate_tests is False
        assert settings.auto_create_issues is False
        assert settings.issue_labels == ("prguard", "qa")

    def test_flattens_nested_sections(self):
        settings = Settings.from_config(
            {
                "trigger": "auto",
                "test_output_dir": "tests/prguard/",
                "autonomous": {"enabled": True, "max_fix_attempts": 5, "base_branch_strategy": "pr-head"},
                "notifications": {"slack": {"enabled": True, "webhook_url": "https://hooks"}},
                "governance": {"force_block": True},
                "feedback": {"hints": ["ignore generated files"]},
                "actions": {
                    "generate_tests": True,
                    "create_issues": True,
                    "create_tasks": True,
                    "issue_labels": ["qa"],
                },
            }
        )
        assert settings.trigger == "auto"
        assert settings.test_output_dir == "tests/prguard"
        assert settings.autonomous_enabled is True
        assert settings.max_fix_attempts == 5
        assert settings.base_branch_strategy == "pr-head"
        assert settings.slack_enabled is True
        assert settings.force_block is True
        assert settings.feedback_hints == ("ignore generated files",)
        assert settings.auto_generate_tests is True
        assert settings.auto_create_issues is True
        assert settings.auto_create_tasks is True
        assert settings.issue_labels == ("qa",)

    def test_unknown_trigger_mode(self):
        with pytest.raises(ConfigError, match="trigger"):
            Settings.from_config({"trigger": "sometimes"})

    def test_unknown_provider(self):
        with pytest.raises(ConfigError, match="provider"):
            Settings.from_config({"model": "llama"})

    def test_unknown_base_branch_strategy(self):
        with pytest.raises(ConfigError, match="base_branch_strategy"):
            Settings.from_config({"autonomous": {"base_branch_strategy": "main"}})

    def test_max_fix_attempts_must_be_positive(self):
        with pytest.raises(ConfigError, match="max_fix_attempts"):
            Settings.from_config({"autonomous": {"max_fix_attempts": 0}})

    def test_frozen(self):
        settings = Settings()
        with pytest.raises(AttributeError):
            settings.trigger = "auto"
