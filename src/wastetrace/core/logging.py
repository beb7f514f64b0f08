"""Centralized logging for WasteTrace.

Four verbosity levels:
- QUIET (0): warnings + errors
- NORMAL (1): info + warnings + errors
- VERBOSE (2): detailed info (per-call upload and persistence traces)
- DEBUG (3): everything including planner decisions

Usage:
    from wastetrace.core.logging import get_logger

    logger = get_logger(__name__)
    logger.verbose("Uploading 2 file(s) to evidence_photo/weighing_slip")
    logger.warning("Reference data unavailable")
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

from wastetrace.core.log_bus import LogRecord, get_log_bus

if TYPE_CHECKING:
    from wastetrace.core.config import ConfigResolver


class VerbosityLevel(IntEnum):
    """Verbosity levels for WasteTrace."""

    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3


_LEVEL_BY_NAME = {
    "quiet": VerbosityLevel.QUIET,
    "normal": VerbosityLevel.NORMAL,
    "verbose": VerbosityLevel.VERBOSE,
    "debug": VerbosityLevel.DEBUG,
}

_VERBOSITY: VerbosityLevel = VerbosityLevel.NORMAL
_USE_COLORS: bool = True


def set_verbosity(level: int | str | VerbosityLevel) -> None:
    """Set global verbosity level.

    Args:
        level: 0-3, a VerbosityLevel, or a level name ("quiet", "debug", ...)
    """
    global _VERBOSITY

    if isinstance(level, str):
        level = _LEVEL_BY_NAME[level.strip().lower()]
    _VERBOSITY = VerbosityLevel(level)


def get_verbosity() -> VerbosityLevel:
    """Get current verbosity level."""
    return _VERBOSITY


def apply_logging_level(level_name: str) -> None:
    """Apply a level name resolved by ConfigResolver.resolve_logging_level()."""
    set_verbosity(level_name)


def set_colors(enabled: bool) -> None:
    """Enable or disable colored console output."""
    global _USE_COLORS
    _USE_COLORS = enabled


def apply_logging_config(resolver: ConfigResolver) -> None:
    """Apply logging.level and logging.color from a ConfigResolver.

    Raises:
        ConfigError: Invalid level name or color flag
    """
    apply_logging_level(resolver.resolve_logging_level())
    set_colors(resolver.resolve_bool("logging.color", True))


class WasteTraceLogger:
    """Logger with verbosity support."""

    COLORS = {
        "DEBUG": "\033[36m",
        "VERBOSE": "\033[34m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "RESET": "\033[0m",
    }

    def __init__(self, name: str):
        self.name = name

    def _format_message(self, level_name: str, message: str) -> str:
        if _USE_COLORS and sys.stdout.isatty():
            color = self.COLORS.get(level_name, "")
            return f"{color}[{level_name.lower()}]{self.COLORS['RESET']} {message}"
        return f"[{level_name.lower()}] {message}"

    def _log(self, level: VerbosityLevel, level_name: str, message: str) -> None:
        if level > _VERBOSITY:
            return

        get_log_bus().publish(
            LogRecord(level_name=level_name, message=message, logger_name=self.name)
        )
        stream = sys.stderr if level_name in ("WARNING", "ERROR") else sys.stdout
        print(self._format_message(level_name, message), file=stream)

    def debug(self, message: str) -> None:
        """Log debug message (verbosity >= DEBUG)."""
        self._log(VerbosityLevel.DEBUG, "DEBUG", message)

    def verbose(self, message: str) -> None:
        """Log verbose message (verbosity >= VERBOSE)."""
        self._log(VerbosityLevel.VERBOSE, "VERBOSE", message)

    def info(self, message: str) -> None:
        """Log info message (verbosity >= NORMAL)."""
        self._log(VerbosityLevel.NORMAL, "INFO", message)

    def warning(self, message: str) -> None:
        """Log warning message (verbosity >= QUIET)."""
        self._log(VerbosityLevel.QUIET, "WARNING", message)

    def error(self, message: str) -> None:
        """Log error message (always shown)."""
        self._log(VerbosityLevel.QUIET, "ERROR", message)


_LOGGERS: dict[str, WasteTraceLogger] = {}


def get_logger(name: str = __name__) -> WasteTraceLogger:
    """Get logger instance for module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    if name not in _LOGGERS:
        _LOGGERS[name] = WasteTraceLogger(name)
    return _LOGGERS[name]
