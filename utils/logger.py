"""Logging configuration for the relay."""

import logging
from pathlib import Path
from typing import Optional, Union

from rich.logging import RichHandler

LOG_FORMAT = '%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s | %(message)s'
LOG_DATE_FORMAT = '%H:%M:%S'

# Loggers that make up the relay process
PROJECT_LOGGERS = ("relay", "web", "main")


def setup_logger(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the relay's loggers once and return the ``relay`` logger.

    Logs go to ``log_file`` when given, otherwise to the console through
    Rich so they interleave cleanly with the startup banner.
    """
    logger = logging.getLogger("relay")

    if logger.handlers:
        return logger

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(path, mode='a')
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    else:
        handler = RichHandler(show_path=False, log_time_format=LOG_DATE_FORMAT)
        handler.setFormatter(logging.Formatter('%(name)s | %(message)s'))

    handler.setLevel(level)
    for name in PROJECT_LOGGERS:
        project_logger = logging.getLogger(name)
        project_logger.setLevel(level)
        project_logger.addHandler(handler)

    return logger


def log_exception(msg: str = "Exception occurred"):
    """Log an exception with full traceback."""
    logging.getLogger("relay").exception(msg)
