"""Logger setup: Rich console output plus an append-only log file."""

import logging
import os
from pathlib import Path
from typing import Union

from rich.logging import RichHandler

from flux.theme import console

LOGGER_NAME: str = "flux"
FALLBACK_LOG_FILE: str = "/tmp/flux-setup.log"
LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"


def _open_file_handler(log_file: Path) -> logging.FileHandler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode="a")
    try:
        os.chmod(str(log_file), 0o644)
    except OSError as e:
        logging.getLogger(LOGGER_NAME).warning(
            f"Could not set permissions on {log_file}: {e}"
        )
    return handler


def setup_logger(
    log_file: Union[str, Path], level: int = logging.INFO
) -> logging.Logger:
    """
    Set up the framework logger.

    Console records at ``level`` and above go through Rich; the file always
    receives DEBUG and above. When ``log_file`` cannot be opened the logger
    falls back to /tmp/flux-setup.log.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for h in logger.handlers[:]:
        logger.removeHandler(h)
        h.close()

    console_handler = RichHandler(
        console=console, rich_tracebacks=True, show_path=False
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    log_path = Path(log_file)
    try:
        file_handler = _open_file_handler(log_path)
    except OSError as e:
        logger.warning(
            f"Cannot write log file {log_path} ({e}). Using {FALLBACK_LOG_FILE}"
        )
        log_path = Path(FALLBACK_LOG_FILE)
        try:
            file_handler = _open_file_handler(log_path)
        except OSError as e:
            logger.warning(f"File logging disabled: {e}")
            return logger

    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    logger.addHandler(file_handler)
    return logger


def current_log_file() -> str:
    """Path of the active log file, or an empty string when there is none."""
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        if isinstance(handler, logging.FileHandler):
            return handler.baseFilename
    return ""
