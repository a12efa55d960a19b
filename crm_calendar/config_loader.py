"""crm_calendar.config_loader

Config loader for the calendar engine.

- Reads YAML (PyYAML) configuration files.
- Exposes a typed dataclass `EngineSettings` and a `load_config()` helper that
  accepts an optional path override.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

INVALID_RULE_POLICIES = ("reject", "clamp")

# Bounds for the maximum query window, in days
MIN_WINDOW_DAYS = 1
MAX_WINDOW_DAYS = 3660


@dataclass
class EngineSettings:
    """Typed configuration for the scheduling and layout engine.

    Fields:
        max_window_days: largest allowed ``window_end - window_start`` span
        max_occurrences_per_rule: cap on instances emitted per event per query
        invalid_rule_policy: "reject" (skip the event) or "clamp" (interval -> 1)
        display_timezone: IANA zone used to bucket aware datetimes into days
        relayout_after_filter: re-run clustering/layout on the filtered set
        log_level: logging level name
    """

    max_window_days: int = 366
    max_occurrences_per_rule: int = 1000
    invalid_rule_policy: str = "reject"
    display_timezone: Optional[str] = None
    relayout_after_filter: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_settings(cls, settings: Any) -> EngineSettings:
        """Extract engine configuration from any settings-like object.

        Args:
            settings: EngineSettings, mapping, object with attributes, or None

        Returns:
            EngineSettings with values from settings or defaults
        """
        if settings is None:
            return cls()
        if isinstance(settings, cls):
            return settings
        if isinstance(settings, dict):
            return cls.from_dict(settings)
        return cls.from_dict(
            {
                key: getattr(settings, key)
                for key in cls.__dataclass_fields__
                if hasattr(settings, key)
            }
        )

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> EngineSettings:
        """Create settings from a plain mapping, applying defaults and validation.

        Numeric values are coerced to int and bounded; invalid values fall back
        to defaults with a warning.
        """
        if data is None:
            data = {}
        defaults = cls()

        def _coerce_int(key: str, default: int) -> int:
            raw = data.get(key, default)
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default

        window_days = _coerce_int("max_window_days", defaults.max_window_days)
        if window_days < MIN_WINDOW_DAYS:
            logger.warning("max_window_days %d below minimum; coercing to %d", window_days, MIN_WINDOW_DAYS)
            window_days = MIN_WINDOW_DAYS
        elif window_days > MAX_WINDOW_DAYS:
            logger.warning("max_window_days %d above maximum; coercing to %d", window_days, MAX_WINDOW_DAYS)
            window_days = MAX_WINDOW_DAYS

        max_occurrences = _coerce_int("max_occurrences_per_rule", defaults.max_occurrences_per_rule)
        if max_occurrences < 1:
            logger.warning("max_occurrences_per_rule %d below minimum; coercing to 1", max_occurrences)
            max_occurrences = 1

        policy = str(data.get("invalid_rule_policy", defaults.invalid_rule_policy)).lower()
        if policy not in INVALID_RULE_POLICIES:
            logger.warning("Unknown invalid_rule_policy %r; using 'reject'", policy)
            policy = "reject"

        display_tz = data.get("display_timezone")
        display_tz = str(display_tz) if display_tz else None

        relayout = data.get("relayout_after_filter", defaults.relayout_after_filter)
        if isinstance(relayout, str):
            relayout = relayout.strip().lower() in ("1", "true", "yes", "on")

        log_level = data.get("log_level", defaults.log_level)
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            max_window_days=window_days,
            max_occurrences_per_rule=max_occurrences,
            invalid_rule_policy=policy,
            display_timezone=display_tz,
            relayout_after_filter=bool(relayout),
            log_level=log_level,
        )


def load_config(path: str | Path | None = None) -> EngineSettings:
    """Load configuration from a YAML file and return an EngineSettings instance.

    Args:
        path: Optional path to the config file. Defaults to ./crm_calendar.yaml.

    Behavior:
    - If file is missing: returns EngineSettings() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / "crm_calendar.yaml"
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return EngineSettings()

    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = EngineSettings.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
