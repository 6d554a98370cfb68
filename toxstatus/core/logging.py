"""
Logging configuration for toxstatus

Provides centralized logging setup for the scanner, the probe engine and
the status server.
"""

import logging
import sys


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: str = "INFO", debug: bool = False) -> logging.Logger:
    """
    Setup logging configuration for toxstatus.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        debug: Enable debug output regardless of level

    Returns:
        Configured package logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if debug:
        numeric_level = logging.DEBUG

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )

    logger = logging.getLogger('toxstatus')
    logger.setLevel(numeric_level)

    return logger
