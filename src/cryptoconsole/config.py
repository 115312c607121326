"""Configuration loading.

Settings come from a YAML file whose values can be overridden per key from
the environment: ``CRYPTOCONSOLE_EXCHANGES__BINANCE__CREDENTIALS__API_KEY``
sets ``exchanges.binance.credentials.api_key``. ``CRYPTOCONSOLE_CONFIG``
names the file itself and ``CRYPTOCONSOLE_LOG_LEVEL`` is read by logging, so
neither is treated as an override.
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Iterator, Mapping

import yaml
from pydantic import ValidationError

from .settings import Settings

ENV_PREFIX = "CRYPTOCONSOLE_"
DEFAULT_CONFIG_FILE = "config.yml"
RESERVED_ENV_KEYS = frozenset({"CONFIG", "LOG_LEVEL"})

logger = logging.getLogger(__name__)


def resolve_config_path(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path:
    env = os.environ if environ is None else environ
    return Path(config_path or env.get(f"{ENV_PREFIX}CONFIG") or DEFAULT_CONFIG_FILE)


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse ``path`` as YAML; a missing or empty file yields ``{}``."""
    if not path.is_file():
        logger.info("Config file %s not found, using defaults", path)
        return {}

    document = yaml.safe_load(path.read_text(encoding="utf-8"))
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError(f"Config root must be a mapping, got: {type(document).__name__}")
    return document


def env_overrides(
    environ: Mapping[str, str] | None = None,
    prefix: str = ENV_PREFIX,
) -> Iterator[tuple[list[str], Any]]:
    """Yield ``(key_path, value)`` for each override variable, sorted by name."""
    env = os.environ if environ is None else environ
    for name in sorted(env):
        if not name.startswith(prefix):
            continue
        suffix = name[len(prefix):]
        if suffix in RESERVED_ENV_KEYS:
            continue
        keys = [part.lower() for part in suffix.split("__") if part]
        if keys:
            yield keys, _scalar(env[name])


def _scalar(raw: str) -> Any:
    # YAML typing so "2.5" and "false" arrive as numbers and booleans
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def _set_path(tree: dict[str, Any], keys: list[str], value: Any) -> None:
    node = tree
    for depth, key in enumerate(keys):
        # file keys keep their spelling ("Binance"), env keys arrive lower-cased
        key = next((k for k in node if str(k).lower() == key), key)
        if depth == len(keys) - 1:
            node[key] = value
            return
        child = node.get(key)
        if not isinstance(child, dict):
            child = node[key] = {}
        node = child


def load_settings(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load and validate settings.

    The file is ``config_path``, else ``$CRYPTOCONSOLE_CONFIG``, else
    ``config.yml`` in the working directory. Validation problems are raised
    as ``ValueError`` so callers report them like any other bad input.
    """
    path = resolve_config_path(config_path, environ)
    data = copy.deepcopy(read_config_file(path))

    for keys, value in env_overrides(environ):
        _set_path(data, keys, value)
        logger.debug("Config key %s overridden from environment", ".".join(keys))

    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    logger.info("Loaded configuration from %s (%d exchanges configured)", path, len(settings.exchanges))
    return settings
