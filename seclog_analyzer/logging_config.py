"""
Logging setup for the seclog_analyzer package.

Every module logs through a child of the ``seclog_analyzer`` logger, which
owns the only handler and does not propagate. Console output defaults to bare
messages so a run reads like a report; ``--verbose`` switches to a structured
format that also names the process, since files are parsed in worker
processes.

    from seclog_analyzer.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("  Wrote %s (%d rows)", name, rows)
"""

import logging
import sys
from typing import Dict, Optional, TextIO, Tuple

PACKAGE_LOGGER = "seclog_analyzer"

SIMPLE_FORMAT = "%(message)s"
DEFAULT_FORMAT = "%(asctime)s [%(processName)s] %(name)s %(levelname)s: %(message)s"

_loggers: Dict[str, logging.Logger] = {}
_configured: bool = False
_level: int = logging.INFO
_format: str = SIMPLE_FORMAT

# (level, format string) handed to worker processes
LoggingSettings = Tuple[int, str]


def configure_logging(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None,
    simple_mode: bool = True,
) -> None:
    """
    Install a single stream handler on the package logger.

    Calling it again replaces the previous handler.

    Args:
        level: Threshold for the package logger.
        format_string: Overrides the format picked by simple_mode.
        stream: Destination (default: sys.stdout).
        simple_mode: Bare messages when True, DEFAULT_FORMAT otherwise.
    """
    global _configured, _level, _format

    if format_string is None:
        format_string = SIMPLE_FORMAT if simple_mode else DEFAULT_FORMAT

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(format_string))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False

    _configured = True
    _level = level
    _format = format_string


def configure_for_cli(verbose: bool = False, quiet: bool = False, stream: Optional[TextIO] = None) -> None:
    """Console logging for the command line: -v wins over -q."""
    configure_logging(stream=stream, simple_mode=not verbose)
    if verbose:
        enable_debug()
    elif quiet:
        enable_quiet()


def logging_settings() -> LoggingSettings:
    return _level, _format


def configure_worker_logging(settings: LoggingSettings) -> None:
    """
    Apply the parent's level and format in a worker process.

    A spawned worker re-imports the package and starts from the INFO default;
    a forked one already matches and keeps its inherited handler.
    """
    if logging_settings() != tuple(settings):
        level, format_string = settings
        configure_logging(level=level, format_string=format_string)


def get_logger(name: str) -> logging.Logger:
    """Logger for a module, configuring the package default on first use."""
    if not _configured:
        configure_logging()

    logger = _loggers.get(name)
    if logger is None:
        logger = _loggers[name] = logging.getLogger(name)
    return logger


def set_level(level: int) -> None:
    global _level
    _level = level
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def enable_debug() -> None:
    set_level(logging.DEBUG)


def enable_quiet() -> None:
    """WARNING and above only."""
    set_level(logging.WARNING)
