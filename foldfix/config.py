"""Configuration management for foldfix."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigError
from .fixup import DEFAULT_COMMIT_MESSAGE

CONFIG_DIR_NAME = ".foldfix"
CONFIG_FILE_NAME = "config.json"
RULES_FILE_NAME = "rules"
DEFAULT_REPORTS_DESTINATION = "build/reports/foldfix/fixes.patch"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# Environment variable -> Config field
_ENV_OVERRIDES = {
    "FOLDFIX_IGNORE_FAILURES": "ignore_failures",
    "FOLDFIX_FIX_IN_PLACE": "fix_in_place",
    "FOLDFIX_AUTO_COMMIT": "auto_commit",
    "FOLDFIX_SHOW_VIOLATIONS": "show_violations",
    "FOLDFIX_REPORTS_DESTINATION": "reports_destination",
    "FOLDFIX_RULES": "rules_path",
    "FOLDFIX_COMMIT_MESSAGE": "commit_message",
}

_BOOL_FIELDS = {"ignore_failures", "fix_in_place", "auto_commit", "show_violations"}


@dataclass
class Config:
    """Runtime configuration for foldfix."""

    repo_path: str = "."
    rules_path: Optional[str] = None
    reports_destination: str = DEFAULT_REPORTS_DESTINATION
    ignore_failures: bool = False
    show_violations: bool = True
    fix_in_place: bool = True
    # Commit fixes and fold them into the last commit with a rebase fixup.
    auto_commit: bool = False
    commit_message: str = DEFAULT_COMMIT_MESSAGE
    # None leaves commit.gpgsign untouched; True/False forces it while committing.
    commit_signing: Optional[bool] = None
    include: List[str] = field(default_factory=list)

    @property
    def project_root(self) -> Path:
        return Path(self.repo_path).expanduser().resolve(strict=False)

    def patch_path(self) -> Path:
        destination = Path(self.reports_destination).expanduser()
        if destination.is_absolute():
            return destination
        return self.project_root / destination

    def to_dict(self) -> Dict[str, Any]:
        """Serialise configuration to a dict for persistence."""
        return asdict(self)


def parse_bool(value: Any, name: str = "value") -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r}")


def _ensure_path(path_like: Optional[Path]) -> Path:
    if path_like is None:
        return Path.cwd().resolve(strict=False)
    return Path(path_like).expanduser().resolve(strict=False)


def _config_file(repo_root: Optional[Path] = None) -> Path:
    return _ensure_path(repo_root) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def save_config(config: Config, repo_root: Optional[Path] = None) -> Path:
    """Persist configuration JSON within the project."""
    cfg_path = _config_file(repo_root or config.project_root)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.to_dict()
    # The location of the config file already implies the project root.
    data.pop("repo_path", None)
    cfg_path.write_text(json.dumps(data, indent=2) + "\n")
    return cfg_path


def load_persisted_config(repo_root: Optional[Path] = None) -> Dict[str, Any]:
    cfg_path = _config_file(repo_root)
    if not cfg_path.exists():
        return {}
    try:
        data = json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid configuration file {cfg_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid configuration file {cfg_path}: expected an object")
    known = {f.name for f in fields(Config)}
    return {key: value for key, value in data.items() if key in known}


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    coerced: Dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if key in _BOOL_FIELDS:
            coerced[key] = parse_bool(value, key)
        elif key == "commit_signing":
            coerced[key] = parse_bool(value, key)
        elif key == "include":
            coerced[key] = [value] if isinstance(value, str) else list(value)
        else:
            coerced[key] = str(value)
    return coerced


def load_config(
    *,
    repo_root: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    env: Optional[Dict[str, str]] = None,
) -> Config:
    """Build configuration from defaults, config file, environment and overrides."""

    overrides = dict(overrides or {})
    env_dict = os.environ if env is None else env
    root = _ensure_path(overrides.pop("repo_path", None) or repo_root)

    values: Dict[str, Any] = {}
    values.update(_coerce(load_persisted_config(root)))
    values.update(
        _coerce(
            {
                name: env_dict[var]
                for var, name in _ENV_OVERRIDES.items()
                if env_dict.get(var)
            }
        )
    )
    values.update(_coerce(overrides))
    values["repo_path"] = str(root)
    return Config(**values)


def resolve_rule_configuration(config: Config) -> str:
    """Return the rule configuration text for ``config``.

    Uses ``rules_path`` when set, otherwise ``.foldfix/rules`` in the
    project root. Raises :class:`ConfigError` when neither is readable.
    """
    if config.rules_path:
        candidate = Path(config.rules_path).expanduser()
        if not candidate.is_absolute():
            candidate = config.project_root / candidate
    else:
        candidate = config.project_root / CONFIG_DIR_NAME / RULES_FILE_NAME

    if not candidate.is_file():
        raise ConfigError(
            "foldfix must have the rules option set or find a rule "
            f"configuration at {candidate}"
        )
    try:
        return candidate.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read rule configuration {candidate}: {exc}") from exc
