"""
Logging setup for applications embedding tilefeatures
"""

import sys

from loguru import logger


def setup_logging(verbose: bool = False):
    """Configure logging"""
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {thread.name} | <cyan>{message}</cyan>",
        level=level
    )
