"""Configuration loading for tabtop.

Loads settings from TOML config files with sensible defaults.
Search order: explicit --config path -> ~/.config/tabtop/config.toml -> defaults only.
"""

from __future__ import annotations

import logging
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tabtop.sampler import HISTORY_SIZE, RefreshPolicy

DEFAULT_CONFIG: dict[str, Any] = {
    "dashboard": {
        "tick_interval": 2.0,
        "history_size": HISTORY_SIZE,
        "process_limit": 20,
        "refresh": RefreshPolicy.ALL.value,
        "background": False,
    },
    "logging": {
        "level": "WARNING",
        "file": "",
    },
}

_DEFAULT_PATH = Path.home() / ".config" / "tabtop" / "config.toml"


class ConfigError(ValueError):
    """A configuration value is missing, of the wrong type, or out of range."""


@dataclass(frozen=True)
class DashboardConfig:
    """Validated settings for one dashboard run."""

    tick_interval: float = 2.0  # seconds
    history_size: int = HISTORY_SIZE
    process_limit: int = 20  # rows drawn on the Processes tab
    refresh: RefreshPolicy = RefreshPolicy.ALL
    background: bool = False
    log_level: str = "WARNING"
    log_file: Path | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DashboardConfig:
        """Build a config from a merged TOML document."""
        dashboard = raw.get("dashboard", {})
        logs = raw.get("logging", {})

        try:
            tick_interval = float(dashboard.get("tick_interval", 2.0))
            history_size = int(dashboard.get("history_size", HISTORY_SIZE))
            process_limit = int(dashboard.get("process_limit", 20))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid number in [dashboard]: {e}") from e

        if tick_interval <= 0:
            raise ConfigError(f"tick_interval must be positive, got {tick_interval}")
        if history_size < 1:
            raise ConfigError(f"history_size must be at least 1, got {history_size}")
        if process_limit < 1:
            raise ConfigError(f"process_limit must be at least 1, got {process_limit}")

        try:
            refresh = RefreshPolicy(dashboard.get("refresh", RefreshPolicy.ALL.value))
        except ValueError as e:
            choices = ", ".join(policy.value for policy in RefreshPolicy)
            raise ConfigError(f"refresh must be one of: {choices}") from e

        background = dashboard.get("background", False)
        if not isinstance(background, bool):
            raise ConfigError(f"background must be true or false, got {background!r}")

        log_level = str(logs.get("level", "WARNING")).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigError(f"unknown log level: {log_level}")
        log_file = logs.get("file") or None

        return cls(
            tick_interval=tick_interval,
            history_size=history_size,
            process_limit=process_limit,
            refresh=refresh,
            background=background,
            log_level=log_level,
            log_file=Path(log_file).expanduser() if log_file else None,
        )


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base. Nested dicts are merged at the first level only."""
    merged = dict(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> DashboardConfig:
    """Load configuration, merging user TOML over defaults.

    Args:
        path: Explicit config file path (from --config). If None, tries the
              default location ~/.config/tabtop/config.toml.

    Returns:
        Validated configuration.

    Raises:
        SystemExit: If an explicit path doesn't exist or can't be parsed.
    """
    if path is not None:
        if not path.is_file():
            print(f"tabtop: config file not found: {path}", file=sys.stderr)
            raise SystemExit(1)
        try:
            user_config = tomllib.loads(path.read_text(encoding="utf-8"))
            return DashboardConfig.from_dict(_deep_merge(DEFAULT_CONFIG, user_config))
        except tomllib.TOMLDecodeError as e:
            print(f"tabtop: invalid TOML in {path}: {e}", file=sys.stderr)
            raise SystemExit(1) from e
        except ConfigError as e:
            print(f"tabtop: {path}: {e}", file=sys.stderr)
            raise SystemExit(1) from e

    # Try default location silently
    if _DEFAULT_PATH.is_file():
        try:
            user_config = tomllib.loads(_DEFAULT_PATH.read_text(encoding="utf-8"))
            return DashboardConfig.from_dict(_deep_merge(DEFAULT_CONFIG, user_config))
        except (tomllib.TOMLDecodeError, ConfigError) as e:
            print(
                f"tabtop: warning: ignoring invalid config {_DEFAULT_PATH}: {e}",
                file=sys.stderr,
            )

    return DashboardConfig.from_dict(DEFAULT_CONFIG)


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    dashboard = DEFAULT_CONFIG["dashboard"]
    logs = DEFAULT_CONFIG["logging"]
    lines = [
        "# tabtop configuration",
        "# Place this file at ~/.config/tabtop/config.toml",
        "",
        "[dashboard]",
        f"tick_interval = {dashboard['tick_interval']}",
        f"history_size = {dashboard['history_size']}",
        f"process_limit = {dashboard['process_limit']}",
        f'refresh = "{dashboard["refresh"]}"  # or "active"',
        f"background = {str(dashboard['background']).lower()}",
        "",
        "[logging]",
        f'level = "{logs["level"]}"',
        f'file = "{logs["file"]}"  # empty: send records to `textual console`',
    ]
    return "\n".join(lines) + "\n"
