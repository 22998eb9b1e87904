"""Logging configuration helpers."""

import logging

APP_LOGGER = "meal_planner"
LOG_FORMAT = "%(levelname)s: %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach one stream handler to the application logger.

    Repeated calls only adjust the level.
    """
    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(level.upper())
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
