# -*- coding: utf-8 -*-
# ============================================================================ #
# DailyCheckin (DCK)                                                           #
# Copyright (c) 2025 MAX                                                       #
# Licensed under the MIT License                                               #
# ============================================================================ #
import logging
import sys
import os
from typing import Optional
from datetime import datetime

import pytz

# Constants for logging
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEBUG_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s [%(filename)s:%(lineno)d]'
DEFAULT_LOG_TIMEZONE = 'Asia/Shanghai'
LOGGER_PREFIX = 'dck'

# Debug status; None means "read from environment on next check"
_debug_mode_enabled = None
_log_timezone = None


def is_debug_mode_enabled() -> bool:
    """
    Checks if debug mode is enabled.

    The value is taken from the DCK_DEBUG environment variable the first time it
    is needed and can be overridden at runtime with set_debug_mode().

    Returns:
        bool: True if debug mode is enabled, otherwise False
    """
    global _debug_mode_enabled
    if _debug_mode_enabled is None:
        _debug_mode_enabled = os.environ.get('DCK_DEBUG', '').lower() in ('1', 'true', 'yes', 'on')
    return _debug_mode_enabled


def set_debug_mode(enabled: bool) -> None:
    """Switches debug mode on or off for all DebugModeFilter instances."""
    global _debug_mode_enabled
    _debug_mode_enabled = bool(enabled)
    logging.getLogger(f'{LOGGER_PREFIX}.config').info(
        "Debug mode has been %s", "ENABLED" if _debug_mode_enabled else "DISABLED"
    )


def set_log_timezone(timezone_name: Optional[str]) -> None:
    """Sets the timezone used by TimezoneFormatter. Unknown names fall back to the default."""
    global _log_timezone
    if not timezone_name:
        _log_timezone = None
        return
    try:
        _log_timezone = pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        logging.getLogger(f'{LOGGER_PREFIX}.config').warning(
            "Unknown log timezone '%s', using %s", timezone_name, DEFAULT_LOG_TIMEZONE
        )
        _log_timezone = None


# A filter that only allows DEBUG logs when debug mode is enabled
class DebugModeFilter(logging.Filter):
    """
    Filter that only allows DEBUG messages when debug mode is enabled.
    INFO and higher levels are always allowed.
    """
    def filter(self, record):
        if record.levelno < logging.INFO:
            return is_debug_mode_enabled()
        return True


# A custom formatter class that uses the configured timezone
class TimezoneFormatter(logging.Formatter):
    """
    A custom formatter that uses the configured timezone for timestamps in logs.
    """
    def __init__(self, fmt=None, datefmt=None, tz=None):
        super().__init__(fmt, datefmt)
        self.tz = tz

    def formatTime(self, record, datefmt=None):
        """
        Overrides the formatTime method to use the configured timezone.
        """
        if datefmt is None:
            datefmt = self.datefmt or '%Y-%m-%d %H:%M:%S'

        tz = self.tz or _log_timezone or pytz.timezone(DEFAULT_LOG_TIMEZONE)
        dt = datetime.fromtimestamp(record.created, tz)
        return dt.strftime(datefmt) + f" {dt.tzname()}"


def setup_logger(name: str, level=logging.INFO, log_to_console=True, log_to_file=False, custom_formatter=None) -> logging.Logger:
    """
    Creates a logger with the specified name and logging level.

    Args:
        name: Logger name
        level: Logging level (default: INFO)
        log_to_console: Whether to output logs to console
        log_to_file: Whether to output logs to a file
        custom_formatter: Optional custom formatter for the logs

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers in case of re-initialization
    if logger.handlers:
        return logger

    if custom_formatter is None:
        if level <= logging.DEBUG:
            formatter = TimezoneFormatter(DEBUG_LOG_FORMAT)
        else:
            formatter = TimezoneFormatter(DEFAULT_LOG_FORMAT)
    else:
        formatter = custom_formatter

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(DebugModeFilter())
        logger.addHandler(console_handler)

    if log_to_file:
        logs_dir = os.environ.get(
            'DCK_LOG_DIR',
            os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs"),
        )
        try:
            os.makedirs(logs_dir, exist_ok=True)
            log_file_path = os.path.join(logs_dir, f"{name.replace('.', '_')}.log")
            file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(DebugModeFilter())
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning("Failed to set up file logging for %s: %s", name, e)

    return logger


def setup_all_loggers(level: int = logging.INFO, log_to_file: bool = False) -> logging.Logger:
    """
    Configures the project root logger and the main component loggers.

    Args:
        level: Log level for all loggers
        log_to_file: Also write each logger to logs/<name>.log
    """
    root_logger = setup_logger(LOGGER_PREFIX, level, log_to_file=log_to_file)
    for component in ('bot', 'checkin', 'points', 'ledger', 'web'):
        setup_logger(f'{LOGGER_PREFIX}.{component}', level, log_to_file=log_to_file)

    if is_debug_mode_enabled():
        root_logger.info("Debug mode is enabled - DEBUG messages will be displayed")
    else:
        root_logger.info("Debug mode is disabled - DEBUG messages will be suppressed")
    return root_logger


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Central factory for project loggers with consistent configuration.

    Args:
        name: Logger name (e.g. 'dck.module_name')
        level: Optional log level override

    Returns:
        Configured logger
    """
    if level is None:
        level = logging.DEBUG if is_debug_mode_enabled() else logging.INFO

    return setup_logger(name, level=level)


def get_module_logger(module_name: str) -> logging.Logger:
    """Logger for a module, with the dck. prefix"""
    return get_logger(f'{LOGGER_PREFIX}.{module_name}')
