"""Supervisor configuration loading.

Configuration lives in ``.agentmux/config.yaml`` and is validated against
``agentmux/config/config_schema.json`` before use. Every key is optional;
missing keys keep the dataclass defaults.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from agentmux.core.agents import AgentCapabilities, get_agent_capabilities, with_overrides

CONFIG_DIR_NAME = ".agentmux"
CONFIG_FILE_NAME = "config.yaml"
SHELL_ENV_VAR = "AGENTMUX_SHELL"


class ConfigError(Exception):
    """Configuration file is missing, malformed, or invalid."""

    pass


@dataclass
class AgentOverride:
    """Per-agent settings from the config file."""

    requires_pty: bool | None = None
    context_window: int | None = None
    supports_cost_tracking: bool | None = None


@dataclass
class SupervisorConfig:
    """Settings for the process supervisor and output pipeline."""

    # PTY defaults
    pty_cols: int = 100
    pty_rows: int = 30
    term_name: str = "xterm-256color"

    # Shell for terminal sessions and one-off commands (None = platform default)
    default_shell: str | None = None

    # Bounded stdout/stderr tail kept per session for exit-time error detection
    max_captured_output_bytes: int = 256 * 1024

    # Seconds between SIGTERM and SIGKILL when killing a session
    kill_grace_seconds: float = 3.0

    # Marker prepended to stderr chunks of plain child processes
    stderr_prefix: str = "[stderr] "

    stats_db_path: str | None = None

    agents: dict[str, AgentOverride] = field(default_factory=dict)

    def resolve_shell(self, requested: str | None = None) -> str:
        """Pick the shell: explicit request, env override, config, $SHELL, then bash."""
        if requested:
            return requested
        env_shell = os.environ.get(SHELL_ENV_VAR)
        if env_shell:
            return env_shell
        if self.default_shell:
            return self.default_shell
        if os.name == "nt":
            return "powershell.exe"
        return os.environ.get("SHELL") or "bash"

    def capabilities_for(self, agent_id: str) -> AgentCapabilities:
        """Agent capabilities with any config overrides applied."""
        capabilities = get_agent_capabilities(agent_id)
        override = self.agents.get(agent_id)
        if override is None:
            return capabilities
        return with_overrides(
            capabilities,
            requires_pty=override.requires_pty,
            supports_cost_tracking=override.supports_cost_tracking,
        )

    def context_window_for(self, agent_id: str) -> int | None:
        override = self.agents.get(agent_id)
        return override.context_window if override else None


def _load_schema() -> dict:
    schema_path = Path(__file__).parent.parent / "config" / "config_schema.json"
    try:
        with open(schema_path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config schema not found at {schema_path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config schema at {schema_path}: {e}")


def config_from_dict(data: dict[str, Any]) -> SupervisorConfig:
    """Validate a raw mapping and build a SupervisorConfig."""
    try:
        jsonschema.validate(data, _load_schema())
    except jsonschema.ValidationError as e:
        raise ConfigError(f"Schema validation failed: {e.message}")

    pty = data.get("pty", {})
    config = SupervisorConfig()
    config.pty_cols = pty.get("cols", config.pty_cols)
    config.pty_rows = pty.get("rows", config.pty_rows)
    config.term_name = pty.get("term_name", config.term_name)
    config.default_shell = data.get("default_shell", config.default_shell)
    config.max_captured_output_bytes = data.get(
        "max_captured_output_bytes", config.max_captured_output_bytes
    )
    config.kill_grace_seconds = data.get("kill_grace_seconds", config.kill_grace_seconds)
    config.stderr_prefix = data.get("stderr_prefix", config.stderr_prefix)
    config.stats_db_path = data.get("stats_db_path", config.stats_db_path)
    config.agents = {
        agent_id: AgentOverride(**(override or {}))
        for agent_id, override in data.get("agents", {}).items()
    }
    return config


def load_config(path: Path | None = None) -> SupervisorConfig:
    """Load configuration from YAML.

    Args:
        path: Config file path. Defaults to ``.agentmux/config.yaml`` in the
              current directory; a missing default file yields defaults.

    Raises:
        ConfigError: If an explicitly given file is missing, or any file is
                     not valid YAML or fails schema validation
    """
    explicit = path is not None
    config_path = path or Path.cwd() / CONFIG_DIR_NAME / CONFIG_FILE_NAME

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_path}")
        return SupervisorConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if data is None:
        return SupervisorConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping in {config_path}")

    return config_from_dict(data)
