"""Logging setup for the command line entry point.

Library modules only create loggers; handlers are installed here once.
"""
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: int = logging.WARNING) -> logging.Logger:
    """Configure the `dockyard` logger to write to stderr.

    Args:
        level: Minimum level that reaches the console.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger("dockyard")
    logger.setLevel(level)

    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console)

    for handler in logger.handlers:
        handler.setLevel(level)

    return logger
