"""
Logging for Gavel.

Every module logs under the `gavel` tree (`gavel.engine`, `gavel.calls`,
`gavel.storage.*`, `gavel.cli`). Console output goes to stderr so that
command output on stdout, such as `gavel winners --json`, stays
machine-readable. An optional rotating file keeps a history of bids for
long-running hosts.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT_LOGGER = "gavel"
LOG_FILE = "gavel.log"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

_CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
_FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

_configured = False


def parse_level(level: Union[int, str]) -> int:
    """
    Turn a level name ('debug', 'INFO', ...) or number into a logging level.

    Raises:
        ValueError: unknown level name
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
) -> logging.Logger:
    """
    (Re)configure the `gavel` logger tree.

    Safe to call more than once; handlers from a previous call are
    replaced, so the CLI can apply --debug after modules have already
    asked for their loggers.

    Args:
        level: Level name or number
        log_dir: Directory for gavel.log. If None, uses ./logs
        log_to_file: Whether to also write a rotating log file

    Returns:
        The `gavel` root logger
    """
    global _configured

    level = parse_level(level)
    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    # Hosts embedding the engine keep their own root handlers
    root_logger.propagate = False

    console_handler = colorlog.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT, log_colors=_LOG_COLORS)
    )
    root_logger.addHandler(console_handler)

    if log_to_file:
        path = Path(log_dir) if log_dir else Path("logs")
        path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path / LOG_FILE,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    _configured = True
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get the logger for one subsystem, e.g. get_logger('engine').

    The tree gets a default console setup the first time a logger is
    requested, so library users see warnings without configuring anything.
    """
    if not _configured:
        setup_logging()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
