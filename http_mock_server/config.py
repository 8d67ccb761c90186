"""Configuration loading for the mock server."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import structlog
import yaml
from pydantic import ValidationError

from .models import MockConfig

LOGGER = structlog.get_logger("http_mock_server.config")

ENV_CONFIG_PATH = "HTTP_MOCK_CONFIG"
DEFAULT_CONFIG_PATHS = (Path("config.yaml"), Path("config/config.yaml"))

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"
_BOOL_TAG = "tag:yaml.org,2002:bool"


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader with YAML 1.2 scalars: timestamps stay strings, only true/false are booleans."""


ConfigLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag not in (_TIMESTAMP_TAG, _BOOL_TAG)]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
ConfigLoader.add_implicit_resolver(
    _BOOL_TAG,
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


class ConfigError(Exception):
    """Raised when the configuration file cannot be located, parsed or validated."""


def resolve_config_path(explicit: Optional[Path] = None) -> Path:
    """Pick the configuration file: explicit path, then env var, then default locations."""

    if explicit is not None:
        return explicit
    env_value = os.environ.get(ENV_CONFIG_PATH)
    if env_value:
        return Path(env_value)
    for candidate in DEFAULT_CONFIG_PATHS:
        if candidate.is_file():
            return candidate
    searched = ", ".join(str(path) for path in DEFAULT_CONFIG_PATHS)
    raise ConfigError(f"could not find config file in any of [{searched}]")


def load_config(path: Path) -> MockConfig:
    """Load and validate a mock server configuration YAML file."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"could not read config file {path}: {exc}") from exc

    try:
        data = yaml.load(text, Loader=ConfigLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"error parsing config file {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    try:
        config = MockConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"config validation failed for {path}:\n{exc}") from exc

    LOGGER.info("config_loaded", path=str(path), rules=len(config.requests))
    for index, rule in enumerate(config.requests, start=1):
        LOGGER.debug(
            "rule_loaded",
            index=index,
            method=rule.method,
            path=rule.path,
            headers=rule.headers,
            query_params=rule.query_params,
            body=rule.body,
        )
    return config
