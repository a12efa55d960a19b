"""Environment-based configuration for crm_calendar."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from crm_calendar.config_loader import EngineSettings

logger = logging.getLogger(__name__)

ENV_PREFIX = "CRM_CALENDAR_"

# Environment variable suffix -> settings key
ENV_KEYS: dict[str, str] = {
    "MAX_WINDOW_DAYS": "max_window_days",
    "MAX_OCCURRENCES_PER_RULE": "max_occurrences_per_rule",
    "INVALID_RULE_POLICY": "invalid_rule_policy",
    "DISPLAY_TIMEZONE": "display_timezone",
    "RELAYOUT_AFTER_FILTER": "relayout_after_filter",
    "LOG_LEVEL": "log_level",
}


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Skips empty lines and comments, strips single and double quotes from
    values. Returns an empty dict when the file does not exist or cannot be read.
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


class ConfigManager:
    """Manages engine configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build a settings mapping from CRM_CALENDAR_* environment variables.

        Recognizes CRM_CALENDAR_MAX_WINDOW_DAYS, CRM_CALENDAR_MAX_OCCURRENCES_PER_RULE,
        CRM_CALENDAR_INVALID_RULE_POLICY, CRM_CALENDAR_DISPLAY_TIMEZONE,
        CRM_CALENDAR_RELAYOUT_AFTER_FILTER and CRM_CALENDAR_LOG_LEVEL. Values
        are passed through as strings; EngineSettings.from_dict coerces them.
        """
        cfg: dict[str, Any] = {}
        for suffix, key in ENV_KEYS.items():
            value = os.environ.get(ENV_PREFIX + suffix)
            if value:
                cfg[key] = value
        return cfg

    def load_settings(self, base: dict[str, Any] | None = None) -> EngineSettings:
        """Load .env, then overlay environment values on ``base``.

        This is the main entry point for loading configuration.
        """
        self.load_env_file()
        merged = dict(base or {})
        merged.update(self.build_config_from_env())
        return EngineSettings.from_dict(merged)
