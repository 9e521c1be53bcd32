import logging
import os
import sys
from logging import Handler
from typing import Optional

from tqdm import tqdm

LOGGER_NAME = "ai_localize"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class TqdmLoggingHandler(Handler):
    """
    Logging handler that writes through tqdm.write so log lines do not
    tear the translation progress bars.
    """
    def __init__(self, level=logging.NOTSET, stream=None):
        super().__init__(level)
        self.stream = stream

    def emit(self, record):
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream or sys.stderr)
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def setup_logger(log_level_str: str, log_file_path: Optional[str], log_to_console: bool) -> logging.Logger:
    """
    Set up the package logger.

    Every module logs through ``logging.getLogger(__name__)``, so configuring
    the ``ai_localize`` logger covers the whole package.

    Args:
        log_level_str: The logging level as a string (e.g., 'INFO', 'DEBUG').
        log_file_path: Optional path of a log file. No file is written when empty.
        log_to_console: Whether to log to stderr.

    Returns:
        The configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)

    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    logger.setLevel(log_level)

    # Clear any existing handlers to prevent duplicate logging
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if log_to_console:
        tqdm_handler = TqdmLoggingHandler()
        tqdm_handler.setFormatter(formatter)
        logger.addHandler(tqdm_handler)

    return logger


def set_verbose(verbose: bool) -> None:
    """Switch the package logger to DEBUG when verbose output is requested."""
    if verbose:
        logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)
