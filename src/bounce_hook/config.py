# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loader for bounce-hook.

Settings are read from INI files and environment variables and returned as
an explicit :class:`HookConfig` value that is passed to the ingest and worker
entry points.

Precedence: defaults < ``./bounce-hook.ini`` < ``/etc/bounce-hook/bounce-hook.ini``
< explicit ``--config`` file < ``BOUNCE_HOOK_*`` environment variables.

Example:
    Configuration file format (bounce-hook.ini)::

        [database]
        url = postgresql://hook:secret@db/hook

        [worker]
        max_retries = 50
        max_delay_seconds = 1800
        api_timeout_seconds = 60
        interval_seconds = 5
        items_per_iteration = 50
        metrics_port = 9108

        [ingest]
        recipient_delimiter = +
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .logger import get_logger

logger = get_logger("config")

ENV_PREFIX = "BOUNCE_HOOK_"
DEFAULT_CONFIG_FILES = ("./bounce-hook.ini", "/etc/bounce-hook/bounce-hook.ini")


@dataclass(frozen=True)
class HookConfig:
    """Typed settings for the ingest and worker paths.

    Attributes:
        database_url: Store connection string (sqlite path, postgresql:// or mysql://).
        max_retries: Attempts after which a delivery becomes a permanent failure.
        max_delay_seconds: Upper bound of the exponential backoff.
        api_timeout_seconds: Timeout of a single webhook POST.
        interval_seconds: Seconds between worker ticks.
        items_per_iteration: Queue rows claimed per tick.
        recipient_delimiter: Sub-address separator stripped from the user part
            before route matching (``john+tag`` -> ``john``). None disables it.
        metrics_port: Port for the Prometheus exporter of the worker, None to disable.
    """

    database_url: str = "sqlite:/var/lib/bounce-hook/bounce-hook.db"
    max_retries: int = 50
    max_delay_seconds: int = 30 * 60
    api_timeout_seconds: int = 60
    interval_seconds: int = 5
    items_per_iteration: int = 50
    recipient_delimiter: str | None = None
    metrics_port: int | None = None

    def __post_init__(self) -> None:
        for name in (
            "max_retries",
            "max_delay_seconds",
            "api_timeout_seconds",
            "interval_seconds",
            "items_per_iteration",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")
        if not self.database_url:
            raise ConfigError("database_url must not be empty")

    @property
    def recovery_grace_seconds(self) -> int:
        """Age after which a ``delivering`` row is considered abandoned.

        Must stay above the longest possible attempt (the request timeout).
        """
        return 2 * self.api_timeout_seconds + self.interval_seconds


# field name -> (section, option, converter)
_SOURCES: dict[str, tuple[str, str, Any]] = {
    "database_url": ("database", "url", str),
    "max_retries": ("worker", "max_retries", int),
    "max_delay_seconds": ("worker", "max_delay_seconds", int),
    "api_timeout_seconds": ("worker", "api_timeout_seconds", int),
    "interval_seconds": ("worker", "interval_seconds", int),
    "items_per_iteration": ("worker", "items_per_iteration", int),
    "recipient_delimiter": ("ingest", "recipient_delimiter", str),
    "metrics_port": ("worker", "metrics_port", int),
}


def _env_name(field_name: str) -> str:
    section, _, _ = _SOURCES[field_name]
    if section == "worker":
        return f"{ENV_PREFIX}WORKER_{field_name.upper()}"
    return f"{ENV_PREFIX}{field_name.upper()}"


def _convert(raw: str, type_fn: Any, source: str, default: Any) -> Any:
    raw = raw.strip()
    if not raw:
        return default
    try:
        return type_fn(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid value %r for %s, using default", raw, source)
        return default


def load_config(config_path: str | Path | None = None, environ: dict[str, str] | None = None) -> HookConfig:
    """Build a :class:`HookConfig` from files and environment.

    Args:
        config_path: Optional explicit INI file; it must exist when given.
        environ: Environment mapping, defaults to ``os.environ``.

    Raises:
        ConfigError: If the explicit file is missing or a value is out of range.
    """
    env = os.environ if environ is None else environ
    defaults = {f.name: f.default for f in fields(HookConfig)}
    values = dict(defaults)

    parser = configparser.ConfigParser()
    candidates = [Path(p) for p in DEFAULT_CONFIG_FILES]
    if config_path is not None:
        explicit = Path(config_path)
        if not explicit.exists():
            raise ConfigError(f"Config file not found: {explicit}")
        candidates.append(explicit)
    read = parser.read([str(p) for p in candidates if p.exists()])
    if read:
        logger.debug("Loaded configuration files: %s", ", ".join(read))

    for name, (section, option, type_fn) in _SOURCES.items():
        if parser.has_option(section, option):
            values[name] = _convert(
                parser.get(section, option), type_fn, f"[{section}] {option}", values[name]
            )
        env_value = env.get(_env_name(name))
        if env_value is not None:
            values[name] = _convert(env_value, type_fn, _env_name(name), values[name])

    return HookConfig(**values)


__all__ = ["DEFAULT_CONFIG_FILES", "ENV_PREFIX", "HookConfig", "load_config"]
