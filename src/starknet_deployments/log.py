"""Logging setup for starknet-deployments command line runs."""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOGGER_NAME = "starknet_deployments"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[Path, str]] = None,
    detailed: bool = False,
) -> logging.Logger:
    """
    Attach a stderr handler (and optionally a file handler) to the package logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file that also receives every record
        detailed: Whether to use detailed format (includes logger name and file/line)

    Returns:
        The package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Prevent duplicate handlers when called twice in one process
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(DETAILED_FORMAT if detailed else SIMPLE_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
