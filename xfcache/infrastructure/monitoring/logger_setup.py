"""Centralized logging configuration for xfcache.

Sets up standard Python logging with a console handler and an optional file
handler. Library code only creates module loggers; this is called by the CLI
(or by an application embedding the cache) once at startup.
"""

import logging
import sys
from typing import Optional, Union

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def resolve_level(level: Union[int, str]) -> int:
    """Maps a level name like 'debug' to its logging constant, defaulting to INFO."""
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), DEFAULT_LOG_LEVEL)


def setup_logging(
    log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None
) -> None:
    """Configures the root logger.

    Args:
        log_level: The minimum logging level (e.g., logging.DEBUG or "debug").
        log_format: The format string for log messages.
        log_file: Optional path to a file for logging output.
    """
    level = resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers attached to the root logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)

    # Log to stderr so command output on stdout stays machine-readable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}", exc_info=True)

    logging.debug(f"Logging configured. Level={logging.getLevelName(level)}")
