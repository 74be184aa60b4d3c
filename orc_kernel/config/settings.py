"""
Settings — YAML configuration validated by pydantic.

Behavioral Contract:
- A missing config file yields defaults; an unreadable one logs a warning
  and yields defaults
- ${VAR} references inside string values are expanded from the environment
- Unknown keys are kept but reported as warnings
- ORC_LOG_LEVEL overrides the configured log level
- Entity paths are always derived from names and IDs, never stored
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ORC_CONFIG"
LOG_LEVEL_ENV_VAR = "ORC_LOG_LEVEL"
DEFAULT_CONFIG_PATH = "~/.orc/config.yml"

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class PathSettings(BaseModel):
    """Roots for every derived path. Relative roots resolve against `home`."""

    model_config = ConfigDict(extra="allow")

    home: Optional[str] = None              # Defaults to the user's home directory
    workbench_root: str = "wb"
    workshop_root: str = ".orc/ws"
    repos_root: str = "src"
    missions_root: str = "src/missions"

    def home_dir(self) -> Path:
        return Path(self.home).expanduser() if self.home else Path.home()

    def _root(self, value: str) -> Path:
        root = Path(value).expanduser()
        return root if root.is_absolute() else self.home_dir() / root

    def workbench_dir(self) -> str:
        return str(self._root(self.workbench_root))

    def workbench_path(self, name: str) -> str:
        return str(self._root(self.workbench_root) / name)

    def gatehouse_path(self, workshop_id: str, workshop_name: str) -> str:
        return str(self._root(self.workshop_root) / f"{workshop_id}-{slugify(workshop_name)}")

    def repo_path(self, name: str) -> str:
        return str(self._root(self.repos_root) / name)

    def commission_workspace(self, commission_id: str) -> str:
        return str(self._root(self.missions_root) / commission_id)

    def groves_dir(self, commission_id: str) -> str:
        return str(Path(self.commission_workspace(commission_id)) / "groves")

    def grove_path(self, commission_id: str, name: str) -> str:
        return str(Path(self.groves_dir(commission_id)) / name)


class SessionSettings(BaseModel):
    """How workshops map onto terminal multiplexer sessions."""

    model_config = ConfigDict(extra="allow")

    workshop_env_var: str = "ORC_WORKSHOP_ID"
    gatehouse_window: str = "orc"
    expected_pane_count: int = 3
    agent_pane_index: int = 2
    agent_command: str = "orc"              # pane_current_command when healthy
    agent_launch_command: str = "orc connect"
    tmux_socket: Optional[str] = None       # tmux -L name; None uses the default server


class OrcSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    db_path: str = "~/.orc/orc.db"
    log_level: str = "INFO"
    paths: PathSettings = PathSettings()
    session: SessionSettings = SessionSettings()


def slugify(name: str) -> str:
    """Lowercase ASCII letters and digits; space, '-' and '_' become '-'."""
    out = []
    for ch in name:
        if "a" <= ch <= "z" or "0" <= ch <= "9":
            out.append(ch)
        elif "A" <= ch <= "Z":
            out.append(ch.lower())
        elif ch in " -_":
            out.append("-")
    return "".join(out)


def expand_env_vars(value: Any) -> Any:
    """Recursively expand ${VAR} in strings. Unset variables expand to ''."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(v) for v in value]
    return value


def _warn_unknown_keys(model: BaseModel, path: str, config_path: Path) -> None:
    if model.model_extra:
        logger.warning(
            "Unknown keys in %s at %s: %s", path, config_path, list(model.model_extra.keys())
        )
    for field_name, field_value in model.__dict__.items():
        if isinstance(field_value, BaseModel):
            _warn_unknown_keys(field_value, f"{path}.{field_name}", config_path)


def _resolve_config_path(path: Optional[str]) -> Path:
    if path:
        return Path(path).expanduser()
    return Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)).expanduser()


def load_settings(path: Optional[str] = None) -> OrcSettings:
    """Load settings from `path`, $ORC_CONFIG or ~/.orc/config.yml."""
    config_path = _resolve_config_path(path)
    settings = OrcSettings()

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to read config file %s: %s", config_path, e)
            raw = None
        if raw is not None:
            settings = OrcSettings.model_validate(expand_env_vars(raw))
            _warn_unknown_keys(settings, "root", config_path)
    else:
        logger.debug("No config file at %s, using defaults", config_path)

    override = os.environ.get(LOG_LEVEL_ENV_VAR)
    if override:
        settings = settings.model_copy(update={"log_level": override.upper()})
    return settings
