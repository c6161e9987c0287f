"""
scriptgraph — Run-time Defaults
================================
Deployment defaults that are not part of a graph or its CompilerOptions:
manifest policy, default timezone/version, and the fallback values for the
include* toggles.

Values come from the process environment, optionally seeded from a .env file
(python-dotenv).  Real environment variables always win over the .env file.

    SCRIPTGRAPH_TIMEZONE               America/New_York
    SCRIPTGRAPH_VERSION                1.0.0
    SCRIPTGRAPH_RUNTIME_VERSION        V8
    SCRIPTGRAPH_WEBAPP_ACCESS          ANYONE_ANONYMOUS
    SCRIPTGRAPH_WEBAPP_EXECUTE_AS      USER_DEPLOYING
    SCRIPTGRAPH_EXECUTION_API_ACCESS   ANYONE
    SCRIPTGRAPH_INCLUDE_LOGGING        true
    SCRIPTGRAPH_INCLUDE_ERROR_HANDLING true
    SCRIPTGRAPH_INCLUDE_RATE_LIMITING  false
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "SCRIPTGRAPH_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class Settings:
    timezone: str = "America/New_York"
    version: str = "1.0.0"
    runtime_version: str = "V8"
    webapp_access: str = "ANYONE_ANONYMOUS"
    webapp_execute_as: str = "USER_DEPLOYING"
    execution_api_access: str = "ANYONE"
    include_logging: bool = True
    include_error_handling: bool = True
    include_rate_limiting: bool = False


def parse_bool(name: str, raw: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    accepted = ", ".join(sorted(_TRUE_VALUES | _FALSE_VALUES))
    raise ValueError(f"Invalid value for {name}: {raw!r}. Accepted values: {accepted}")


def settings_from_mapping(env: Mapping[str, str]) -> Settings:
    """Build Settings from an environment-like mapping; missing keys keep defaults."""
    defaults = Settings()

    def _str(key: str, default: str) -> str:
        value = env.get(ENV_PREFIX + key)
        return value.strip() if value and value.strip() else default

    def _bool(key: str, default: bool) -> bool:
        value = env.get(ENV_PREFIX + key)
        if value is None or not value.strip():
            return default
        return parse_bool(ENV_PREFIX + key, value)

    return Settings(
        timezone=_str("TIMEZONE", defaults.timezone),
        version=_str("VERSION", defaults.version),
        runtime_version=_str("RUNTIME_VERSION", defaults.runtime_version),
        webapp_access=_str("WEBAPP_ACCESS", defaults.webapp_access),
        webapp_execute_as=_str("WEBAPP_EXECUTE_AS", defaults.webapp_execute_as),
        execution_api_access=_str("EXECUTION_API_ACCESS", defaults.execution_api_access),
        include_logging=_bool("INCLUDE_LOGGING", defaults.include_logging),
        include_error_handling=_bool("INCLUDE_ERROR_HANDLING", defaults.include_error_handling),
        include_rate_limiting=_bool("INCLUDE_RATE_LIMITING", defaults.include_rate_limiting),
    )


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load Settings from the environment.

    Args:
        env_file: Optional path to a .env file.  When omitted, python-dotenv
                  searches for a .env file from the current directory upward.

    Returns:
        A frozen Settings instance.

    Raises:
        ValueError: If a boolean variable holds an unrecognised value.
    """
    if env_file is not None:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(find_dotenv(usecwd=True), override=False)
    return settings_from_mapping(os.environ)


__all__ = ["Settings", "load_settings", "parse_bool", "settings_from_mapping"]
