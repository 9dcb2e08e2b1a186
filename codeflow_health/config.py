"""Configuration loader for codeflow-health.

Reads YAML configuration from ~/.config/codeflow-health/config.yaml (or a
custom path). Every setting has a default matching the dotnet codeflow
setup, so the file is optional.

Requires PyYAML (pip install pyyaml).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Optional

import yaml


DEFAULT_CONFIG_PATH = os.path.expanduser("~/.config/codeflow-health/config.yaml")


@dataclass
class Config:
    """Top-level application configuration."""

    bot_author: str = "app/dotnet-maestro"
    bot_login_prefix: str = "dotnet-maestro"
    vmr_repository: str = "dotnet/dotnet"
    title_marker: str = "Source code updates from"
    preview_threshold_days: int = 14
    merged_retries: int = 3
    retry_delay_seconds: float = 1.0
    gh_timeout: int = 30
    health_timeout: int = 60
    open_limit: int = 100
    merged_limit: int = 30
    forward_limit: int = 10

    @property
    def vmr_owner(self) -> str:
        return self.vmr_repository.split("/", 1)[0]

    @property
    def backflow_marker(self) -> str:
        """Title phrase carried by every backflow PR."""
        return f"{self.title_marker} {self.vmr_repository}"

    def forward_flow_marker(self, repo_short_name: str) -> str:
        """Title phrase carried by forward-flow PRs from one component repo."""
        return f"{self.title_marker} {self.vmr_owner}/{repo_short_name}"


def _expand_path(path: str) -> str:
    """Expand ~ and environment variables in a path."""
    return os.path.expanduser(os.path.expandvars(path))


def _coerce(value, default):
    """Return value if it has the same type as default, else default.

    Ints are accepted where floats are expected; bools are never accepted
    as numbers.
    """
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(default, float) and isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, type(default)):
        return value
    return default


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML config file. Defaults to
            ~/.config/codeflow-health/config.yaml.

    Returns:
        A Config instance. Missing files, non-mapping documents and
        wrongly typed values fall back to defaults.
    """
    path = _expand_path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not os.path.isfile(path):
        return Config()

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        return Config()

    defaults = Config()
    values = {}
    for fld in fields(Config):
        if fld.name in data:
            values[fld.name] = _coerce(data[fld.name], getattr(defaults, fld.name))
    return Config(**values)
