"""User configuration, read from ``$XDG_CONFIG_HOME/mutagui/config.yml``.

Every key is optional:

    ui:
      theme: auto                  # auto | light | dark
      default_display_mode: paths  # paths | last_sync
    refresh:
      enabled: true
      interval_secs: 3
    projects:
      search_paths: [~/code]
      exclude_patterns: [node_modules, .git, target]
"""

import logging
import os
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, ValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)

DISPLAY_PATHS = "paths"
DISPLAY_LAST_SYNC = "last_sync"

DEFAULT_EXCLUDE_PATTERNS = ["node_modules", ".git", "target"]

LEGACY_CONFIG_NAME = "config.toml"


class UiConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    theme: Literal["auto", "light", "dark"] = "auto"
    default_display_mode: Literal["paths", "last_sync"] = DISPLAY_PATHS


class RefreshConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: StrictBool = True
    interval_secs: StrictInt = Field(default=3, gt=0)


class DiscoveryConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    search_paths: List[str] = Field(default_factory=list)
    exclude_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))


class Config(BaseModel):
    model_config = ConfigDict(extra="allow")

    ui: UiConfig = Field(default_factory=UiConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    projects: DiscoveryConfig = Field(default_factory=DiscoveryConfig)


def default_config_path():
    # type: () -> str
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return os.path.join(base, "mutagui", "config.yml")


def _warn_unknown_keys(model, path):
    # type: (BaseModel, str) -> None
    """Warn about keys the models do not know, at any depth."""
    if model.model_extra:
        logger.warning("Unknown config keys in %s: %s", path, sorted(model.model_extra))
    for name, value in model.__dict__.items():
        if isinstance(value, BaseModel):
            _warn_unknown_keys(value, "%s.%s" % (path, name))


def _describe(exc):
    # type: (ValidationError) -> str
    parts = []
    for error in exc.errors():
        where = ".".join(str(p) for p in error["loc"]) or "top level"
        parts.append("%s: %s" % (where, error["msg"]))
    return "; ".join(parts)


def parse_config(raw):
    # type: (Optional[Dict[str, Any]]) -> Config
    try:
        config = Config.model_validate(raw or {})
    except ValidationError as exc:
        raise ConfigError(_describe(exc))
    _warn_unknown_keys(config, "root")
    return config


def load_config(path=None):
    # type: (Optional[str]) -> Config
    """Load the config file; a missing file gives the defaults.

    Raises ConfigError when the file exists but cannot be used.
    """
    path = path or default_config_path()
    legacy = os.path.join(os.path.dirname(path), LEGACY_CONFIG_NAME)
    if os.path.exists(legacy):
        logger.warning(
            "%s is no longer read; move its settings to %s", legacy, os.path.basename(path)
        )
    if not os.path.exists(path):
        logger.debug("no config file at %s, using defaults", path)
        return Config()
    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError("%s: %s" % (path, exc))
    except UnicodeDecodeError as exc:
        raise ConfigError("%s: not valid UTF-8: %s" % (path, exc))
    except yaml.YAMLError as exc:
        raise ConfigError("%s: invalid YAML: %s" % (path, exc))
    try:
        return parse_config(raw)
    except ConfigError as exc:
        raise ConfigError("%s: %s" % (path, exc))
