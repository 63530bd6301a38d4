"""Configuration loader for nwcloudctl.

Configuration values are merged from several sources, later ones winning:

1. Built-in defaults.
2. ``~/.config/nwcloudctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``NWCLOUDCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export NWCLOUDCTL_DEPLOY__ACCOUNT=myaccount
    export NWCLOUDCTL_BACKUP_POLICY=fail

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load nwcloudctl configuration. Install with "
        "`pip install nwcloudctl` or ensure PyYAML>=6.0 is available."
    ) from exc

from .backups import BackupPolicy
from .commands import DeploySettings

ENV_PREFIX = "NWCLOUDCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for nwcloudctl."""

    config_file: Path
    logs_dir: Path
    runtime_dir: Path
    templates_dir: Path
    lock_timeout: float
    backup_policy: BackupPolicy
    deploy: DeploySettings

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "templates_dir": str(self.templates_dir),
            "lock_timeout": self.lock_timeout,
            "backup_policy": self.backup_policy.value,
            "deploy": self.deploy.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/nwcloudctl/config.yml",
    "logs_dir": "~/.local/state/nwcloudctl/logs",
    "runtime_dir": "~/.local/state/nwcloudctl/run",
    "templates_dir": "~/.config/nwcloudctl/templates",
    "lock_timeout": 30.0,
    "backup_policy": BackupPolicy.SKIP.value,
    "deploy": {
        "host": "hana.ondemand.com",
        "account": "",
        "application": "",
        "user": "",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_DEPLOY_KEYS = {"host", "account", "application", "user"}
ALLOWED_BACKUP_POLICIES = {policy.value for policy in BackupPolicy}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    lock_timeout = raw.get("lock_timeout")
    if lock_timeout is not None:
        _expect_positive_float(lock_timeout, "lock_timeout", default=30.0)

    policy = raw.get("backup_policy")
    if policy is not None and str(policy) not in ALLOWED_BACKUP_POLICIES:
        allowed = ", ".join(sorted(ALLOWED_BACKUP_POLICIES))
        raise ConfigError(f"Unsupported backup policy '{policy}'. Allowed: {allowed}.")

    deploy = raw.get("deploy")
    if deploy is not None:
        deploy_map = _as_dict(deploy, "deploy")
        unknown = set(deploy_map.keys()) - ALLOWED_DEPLOY_KEYS
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown deploy configuration keys: {joined}.")
        for key, value in deploy_map.items():
            if value is not None and not isinstance(value, (str, int)):
                raise ConfigError(f"deploy.{key} must be a string. Got {type(value).__name__}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    deploy_mapping = _as_dict(raw.get("deploy"), "deploy")
    deploy = DeploySettings(
        host=_scalar_text(deploy_mapping.get("host"), default="hana.ondemand.com"),
        account=_scalar_text(deploy_mapping.get("account")),
        application=_scalar_text(deploy_mapping.get("application")),
        user=_scalar_text(deploy_mapping.get("user")),
    )
    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        runtime_dir=_to_path(raw.get("runtime_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        lock_timeout=_expect_positive_float(raw.get("lock_timeout"), "lock_timeout", default=30.0),
        backup_policy=BackupPolicy(str(raw.get("backup_policy", BackupPolicy.SKIP.value))),
        deploy=deploy,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _scalar_text(value: object | None, *, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "DEFAULTS",
    "load_config",
]
