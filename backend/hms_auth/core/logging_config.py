import logging
import sys

LOGGER_NAME = "backend.hms_auth"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a single stream handler to the package logger.
    Safe to call more than once (e.g. one app per test case).
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    if not any(getattr(h, "_hms_auth", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._hms_auth = True
        logger.addHandler(handler)

    logger.propagate = False
    return logger
