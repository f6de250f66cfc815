"""Logging configuration for the CLI."""

import logging
import sys


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger to write to stderr.

    Args:
        verbose: If True, sets log level to DEBUG, otherwise INFO.
    """
    logger = logging.getLogger()
    log_level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(log_level)

    # Avoid duplicate handlers when invoked more than once
    if logger.hasHandlers():
        logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
