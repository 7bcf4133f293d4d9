'''
Application-wide logger shared by the services and the maintenance job.
'''
import logging
import sys

from .config import settings

LOGGER_NAME = 'class-scheduler'


def setup_logger(level: str = settings.LOG_LEVEL) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    # Tests and the cron job import this module repeatedly.
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(module)s.%(funcName)s - %(levelname)s\n - %(message)s'
    ))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


log = setup_logger()
