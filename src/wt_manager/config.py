"""User configuration for wt-manager.

Configuration lives at ~/.config/wt-manager/config.json. A missing file
yields the defaults; a file that exists but cannot be parsed, or that holds
invalid values, raises ConfigError.
"""

from __future__ import annotations

import fnmatch
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .constants import (
    DEFAULT_REFRESH_TIMEOUT,
    MAX_CONCURRENT_PR_FETCHES,
    VALID_FORGE_TYPES,
    VALID_HOOK_TRIGGERS,
    config_dir,
)
from .exceptions import ConfigError


@dataclass
class ForgeRule:
    pattern: str
    type: str


@dataclass
class ForgeConfig:
    default: str = "github"
    rules: list[ForgeRule] = field(default_factory=list)

    def type_for_repo(self, repo_spec: str) -> str | None:
        """Return the forge type of the first rule matching "owner/repo"."""
        for rule in self.rules:
            if fnmatch.fnmatchcase(repo_spec, rule.pattern):
                return rule.type
        return None


@dataclass
class PruneConfig:
    delete_local_branches: bool = False


@dataclass
class PRConfig:
    max_concurrent_fetches: int = MAX_CONCURRENT_PR_FETCHES
    refresh_timeout: float | None = DEFAULT_REFRESH_TIMEOUT


@dataclass
class Hook:
    command: str
    description: str = ""
    on: list[str] = field(default_factory=list)
    enabled: bool = True


@dataclass
class Config:
    default_labels: list[str] = field(default_factory=list)
    hosts: dict[str, str] = field(default_factory=dict)
    forge: ForgeConfig = field(default_factory=ForgeConfig)
    prune: PruneConfig = field(default_factory=PruneConfig)
    pr: PRConfig = field(default_factory=PRConfig)
    hooks: dict[str, Hook] = field(default_factory=dict)


def get_config_path() -> Path:
    """Get the path to the config file.

    Returns:
        Path to config file: ~/.config/wt-manager/config.json
    """
    return config_dir() / "config.json"


def _coerce_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {"1", "true", "yes", "y", "on"}:
            return True
        if text in {"0", "false", "no", "n", "off"}:
            return False
    return default


def _normalize_str_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        return [text] if text else []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return []


def _validate_enum(value: str, key: str, allowed: tuple[str, ...]) -> None:
    if value not in allowed:
        raise ConfigError(
            f"invalid value {value!r} for {key}: expected one of {', '.join(allowed)}"
        )


def _parse_hooks(raw: object) -> dict[str, Hook]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("hooks must be an object of name -> hook")

    hooks: dict[str, Hook] = {}
    for name, spec in raw.items():
        if isinstance(spec, str):
            spec = {"command": spec}
        if not isinstance(spec, dict) or not str(spec.get("command", "")).strip():
            raise ConfigError(f"hook {name!r} needs a command")
        on = _normalize_str_list(spec.get("on"))
        for trigger in on:
            _validate_enum(trigger, f"hooks.{name}.on", VALID_HOOK_TRIGGERS)
        hooks[name] = Hook(
            command=str(spec["command"]),
            description=str(spec.get("description", "")),
            on=on,
            enabled=_coerce_bool(spec.get("enabled"), True),
        )
    return hooks


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    raw = data.get(key) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{key} must be an object")
    return raw


def parse_config(data: dict[str, Any]) -> Config:
    """Build a Config from decoded JSON, validating enum fields.

    Raises:
        ConfigError: If a value has the wrong shape or an unknown forge type
    """
    forge_raw = _section(data, "forge")
    rules = [
        ForgeRule(pattern=str(rule.get("pattern", "")), type=str(rule.get("type", "")))
        for rule in forge_raw.get("rules") or []
        if isinstance(rule, dict)
    ]
    forge = ForgeConfig(default=str(forge_raw.get("default") or "github"), rules=rules)
    _validate_enum(forge.default, "forge.default", VALID_FORGE_TYPES)
    for i, rule in enumerate(forge.rules):
        _validate_enum(rule.type, f"forge.rules[{i}].type", VALID_FORGE_TYPES)

    hosts_raw = data.get("hosts") or {}
    if not isinstance(hosts_raw, dict):
        raise ConfigError("hosts must be an object of domain -> forge type")
    hosts = {str(host).lower(): str(kind) for host, kind in hosts_raw.items()}
    for host, kind in hosts.items():
        _validate_enum(kind, f"hosts[{host!r}]", VALID_FORGE_TYPES)

    prune_raw = _section(data, "prune")
    pr_raw = _section(data, "pr")

    try:
        max_concurrent = int(pr_raw.get("max_concurrent_fetches", MAX_CONCURRENT_PR_FETCHES))
        timeout_raw = pr_raw.get("refresh_timeout", DEFAULT_REFRESH_TIMEOUT)
        refresh_timeout = float(timeout_raw) if timeout_raw is not None else None
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid pr settings: {e}") from e
    if max_concurrent < 1:
        raise ConfigError("pr.max_concurrent_fetches must be at least 1")

    return Config(
        default_labels=_normalize_str_list(data.get("default_labels")),
        hosts=hosts,
        forge=forge,
        prune=PruneConfig(
            delete_local_branches=_coerce_bool(prune_raw.get("delete_local_branches"), False)
        ),
        pr=PRConfig(max_concurrent_fetches=max_concurrent, refresh_timeout=refresh_timeout),
        hooks=_parse_hooks(data.get("hooks")),
    )


def load_config(path: Path | None = None) -> Config:
    """Load configuration from disk.

    Args:
        path: Override for the config file location.

    Returns:
        Parsed Config. Defaults if the file does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or holds invalid values
    """
    config_path = path or get_config_path()
    if not config_path.exists():
        return Config()

    try:
        with open(config_path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"failed to read {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    return parse_config(data)
