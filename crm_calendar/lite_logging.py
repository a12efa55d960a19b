"""
Central logging configuration for crm_calendar.

Sets engine module levels and quiets third-party libraries while keeping
WARNING/ERROR/INFO output for diagnostics.
"""

import logging
import os
from typing import Optional

ENGINE_MODULES = [
    "crm_calendar",
    "crm_calendar.calendar.recurrence",
    "crm_calendar.calendar.interval_index",
    "crm_calendar.calendar.layout",
    "crm_calendar.calendar.filters",
    "crm_calendar.domain.pipeline",
    "crm_calendar.domain.pipeline_stages",
]

LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for crm_calendar.

    Args:
        debug_mode: Whether to enable debug logging for crm_calendar modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        CRM_CALENDAR_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CRM_CALENDAR_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CRM_CALENDAR_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CRM_CALENDAR_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in LEVEL_NAMES:
        root_level = getattr(logging, env_log_level)

    # Don't use force=True: keep the colorized handler from _init_logging
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s"))
        root_logger.addHandler(handler)

    logger_config: dict[str, int] = {
        "yaml": logging.WARNING,
        "dateutil": logging.WARNING,
    }

    engine_level = logging.DEBUG if final_debug else logging.INFO
    for module in ENGINE_MODULES:
        logger_config[module] = engine_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for crm_calendar modules.")
    else:
        root_logger.debug("Production logging configuration applied.")


def get_logging_status() -> dict[str, str]:
    """Return the effective level of the root and engine loggers, by name."""
    status = {"root": logging.getLevelName(logging.getLogger().getEffectiveLevel())}
    for module in ENGINE_MODULES:
        status[module] = logging.getLevelName(logging.getLogger(module).getEffectiveLevel())
    return status
