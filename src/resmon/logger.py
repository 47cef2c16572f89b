"""Logging setup for resmon."""

import logging
import logging.handlers
import os

ROOT_LOGGER_NAME = "resmon"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _get_log_level(level_name: str, default_level: int = logging.INFO) -> int:
    """Convert a level name such as 'DEBUG' into a logging constant."""
    level = logging.getLevelName(str(level_name).upper())
    if isinstance(level, int):
        return level
    logging.getLogger(ROOT_LOGGER_NAME).warning(
        "Invalid log level name '%s'. Using %s.", level_name, logging.getLevelName(default_level)
    )
    return default_level


def setup_logging(
    level_name: str = "INFO",
    log_file: str | None = None,
    console: bool = True,
    extra_handlers: list[logging.Handler] | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the ``resmon`` logger.

    Args:
        level_name: Level for every handler attached here.
        log_file: Path of a rotating log file. None disables file logging.
        console: Attach a stderr handler. The dashboard turns this off since
            it owns the terminal.
        extra_handlers: Additional handlers, e.g. Textual's devtools handler.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.

    Returns:
        The configured ``resmon`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = _get_log_level(level_name)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    handlers: list[logging.Handler] = []
    file_error: OSError | None = None

    if console:
        handlers.append(logging.StreamHandler())

    if log_file:
        log_dir = os.path.dirname(log_file)
        try:
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(
                logging.handlers.RotatingFileHandler(
                    log_file,
                    maxBytes=max_bytes,
                    backupCount=backup_count,
                    encoding="utf-8",
                )
            )
        except OSError as e:
            file_error = e

    handlers.extend(extra_handlers or [])

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    if file_error is not None:
        logger.error("Failed to set up file logging to %s: %s", log_file, file_error)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger that lives under the ``resmon`` hierarchy."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
