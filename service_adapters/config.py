"""Centralized application settings powered by Pydantic."""

from __future__ import annotations

import configparser
import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    service_config_path: Optional[Path] = None
    template_dir: Path = Path("templates")
    service_env_prefix: str = "SERVICE_"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


def load_prefixed_env(prefix: str) -> Dict[str, str]:
    """Return environment variables that start with the given prefix.

    Keys are normalized by stripping the prefix and lowercasing to align with
    service configuration expectations.
    """

    normalized_prefix = prefix.upper()
    return {
        key.removeprefix(normalized_prefix).lower(): value
        for key, value in os.environ.items()
        if key.startswith(normalized_prefix)
    }


def merge_config(
    defaults: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]] = None,
    env_overrides: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Combine default configuration with caller-supplied values.

    Replacement happens per top-level key. Environment-derived values are laid
    over the defaults first so that explicit ``overrides`` always win.
    """

    merged = copy.deepcopy(dict(defaults))
    merged.update(env_overrides or {})
    merged.update(overrides or {})
    return merged


def load_service_config(path: Path | str) -> Dict[str, Dict[str, str]]:
    """Read an INI file holding one section per service."""

    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # keep keys such as ``enableXvfb`` intact
    if not parser.read(path, encoding="utf-8"):
        return {}

    return {
        section: {key: _unquote(value) for key, value in parser.items(section)}
        for section in parser.sections()
    }


def as_bool(value: Any) -> bool:
    """Coerce a configuration flag, treating INI-style false strings as False."""

    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


settings = Settings()
