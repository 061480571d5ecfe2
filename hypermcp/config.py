"""Loading of the server configuration file."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


class ConfigError(Exception):
    """Raised when the configuration cannot be read or is invalid."""


def _string_list(value: Any, key: str) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"`{key}` must be a list of strings")
    return list(value)


@dataclass
class RuntimeConfig:
    """Sandbox settings handed to a plugin."""

    allowed_hosts: list[str] | None = None
    allowed_paths: list[str] | None = None
    env_vars: dict[str, str] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> RuntimeConfig:
        if not isinstance(data, dict):
            raise ConfigError("`runtime_config` must be a mapping")
        env_vars = data.get("env_vars")
        if env_vars is not None:
            if not isinstance(env_vars, dict) or not all(
                isinstance(key, str) and isinstance(value, str) for key, value in env_vars.items()
            ):
                raise ConfigError("`env_vars` must map strings to strings")
            env_vars = dict(env_vars)
        return cls(
            allowed_hosts=_string_list(data.get("allowed_hosts"), "allowed_hosts"),
            allowed_paths=_string_list(data.get("allowed_paths"), "allowed_paths"),
            env_vars=env_vars,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed_hosts": self.allowed_hosts,
            "allowed_paths": self.allowed_paths,
            "env_vars": self.env_vars,
        }


@dataclass
class PluginConfig:
    """One plugin: its name, where to load it from and its runtime settings."""

    name: str
    path: str
    runtime_config: RuntimeConfig | None = None

    @classmethod
    def from_dict(cls, data: Any) -> PluginConfig:
        if not isinstance(data, dict):
            raise ConfigError("each plugin entry must be a mapping")
        for key in ("name", "path"):
            if key not in data:
                raise ConfigError(f"missing field `{key}` in plugin entry")
            if not isinstance(data[key], str):
                raise ConfigError(f"`{key}` of a plugin must be a string")
        runtime = data.get("runtime_config")
        return cls(
            name=data["name"],
            path=data["path"],
            runtime_config=None if runtime is None else RuntimeConfig.from_dict(runtime),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "runtime_config": None if self.runtime_config is None else self.runtime_config.to_dict(),
        }


@dataclass
class Config:
    """The whole server configuration."""

    plugins: list[PluginConfig] = field(default_factory=list)
    insecure_skip_signature: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a mapping")
        if "plugins" not in data:
            raise ConfigError("missing field `plugins`")
        plugins = data["plugins"]
        if not isinstance(plugins, list):
            raise ConfigError("`plugins` must be a list")
        skip = data.get("insecure_skip_signature", False)
        if not isinstance(skip, bool):
            raise ConfigError("`insecure_skip_signature` must be a boolean")
        return cls(
            plugins=[PluginConfig.from_dict(entry) for entry in plugins],
            insecure_skip_signature=skip,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugins": [plugin.to_dict() for plugin in self.plugins],
            "insecure_skip_signature": self.insecure_skip_signature,
        }


def load_config(path: str | Path) -> Config:
    """Read a JSON, YAML or TOML configuration file, chosen by extension."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(
            f"Config file not found at: {path}. Please create a config file first."
        )
    ext = path.suffix[1:] if path.suffix else ""

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Failed to read config file at {path}") from exc

    try:
        match ext:
            case "json":
                data = json.loads(content)
            case "yaml" | "yml":
                data = yaml.safe_load(content)
            case "toml":
                data = tomllib.loads(content)
            case _:
                raise ConfigError(f"Unsupported config format: {ext}")
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to parse config file at {path}: {exc}") from exc

    return Config.from_dict(data)