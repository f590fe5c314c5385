"""Tests for configuration loading and agent capabilities."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from agentmux.core.agents import (
    DEFAULT_CAPABILITIES,
    get_agent_capabilities,
    with_overrides,
)
from agentmux.core.config import (
    SHELL_ENV_VAR,
    ConfigError,
    SupervisorConfig,
    config_from_dict,
    load_config,
)


class TestLoadConfig:
    def test_missing_default_file_gives_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config == SupervisorConfig()

    def test_missing_explicit_file_raises(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == SupervisorConfig()

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("pty: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping_root(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_full_file(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "pty": {"cols": 120, "rows": 40},
                    "default_shell": "/bin/zsh",
                    "kill_grace_seconds": 1.5,
                    "stats_db_path": "/tmp/stats.db",
                    "agents": {"codex": {"context_window": 400000}},
                }
            )
        )
        config = load_config(path)
        assert (config.pty_cols, config.pty_rows) == (120, 40)
        assert config.term_name == "xterm-256color"
        assert config.default_shell == "/bin/zsh"
        assert config.kill_grace_seconds == 1.5
        assert config.stats_db_path == "/tmp/stats.db"
        assert config.context_window_for("codex") == 400000
        assert config.context_window_for("claude-code") is None


class TestSchemaValidation:
    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigError, match="Schema validation failed"):
            config_from_dict({"colour": "blue"})

    def test_bad_type_rejected(self):
        with pytest.raises(ConfigError):
            config_from_dict({"pty": {"cols": "wide"}})

    def test_negative_grace_rejected(self):
        with pytest.raises(ConfigError):
            config_from_dict({"kill_grace_seconds": -1})

    def test_unknown_agent_override_key_rejected(self):
        with pytest.raises(ConfigError):
            config_from_dict({"agents": {"codex": {"turbo": True}}})


class TestResolveShell:
    def test_explicit_request_wins(self, monkeypatch):
        monkeypatch.setenv(SHELL_ENV_VAR, "/bin/env-shell")
        config = SupervisorConfig(default_shell="/bin/config-shell")
        assert config.resolve_shell("/bin/asked") == "/bin/asked"

    def test_env_override_before_config(self, monkeypatch):
        monkeypatch.setenv(SHELL_ENV_VAR, "/bin/env-shell")
        assert SupervisorConfig(default_shell="/bin/config-shell").resolve_shell() == "/bin/env-shell"

    def test_config_before_login_shell(self, monkeypatch):
        monkeypatch.delenv(SHELL_ENV_VAR, raising=False)
        monkeypatch.setenv("SHELL", "/bin/login-shell")
        assert SupervisorConfig(default_shell="/bin/config-shell").resolve_shell() == "/bin/config-shell"

    def test_login_shell_then_bash(self, monkeypatch):
        monkeypatch.delenv(SHELL_ENV_VAR, raising=False)
        monkeypatch.setenv("SHELL", "/bin/login-shell")
        assert SupervisorConfig().resolve_shell() == "/bin/login-shell"
        monkeypatch.delenv("SHELL")
        assert SupervisorConfig().resolve_shell() == "bash"


class TestCapabilities:
    def test_unknown_agent_gets_defaults(self):
        assert get_agent_capabilities("mystery") == DEFAULT_CAPABILITIES

    def test_terminal_requires_pty(self):
        assert get_agent_capabilities("terminal").requires_pty is True

    def test_codex_has_no_cost_tracking(self):
        assert get_agent_capabilities("codex").supports_cost_tracking is False

    def test_overrides_ignore_none(self):
        base = get_agent_capabilities("claude-code")
        assert with_overrides(base, requires_pty=None) == base
        assert with_overrides(base, requires_pty=True).requires_pty is True

    def test_config_overrides_applied(self):
        config = config_from_dict({"agents": {"codex": {"requires_pty": True}}})
        capabilities = config.capabilities_for("codex")
        assert capabilities.requires_pty is True
        assert capabilities.supports_json_output is True
