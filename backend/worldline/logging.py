"""
Logging configuration for the Worldline API.
"""

import logging
import sys

from worldline.config import settings


def setup_logging(stream=None) -> logging.Logger:
    """
    Configure application logging.

    :param stream: Stream for log records, stdout when omitted
    :return: Root logger for the worldline application
    :rtype: logging.Logger
    """
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(stream or sys.stdout)]
    )

    return logging.getLogger('worldline')


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    :param name: The module name for the logger
    :type name: str
    :return: Logger instance for the specified module
    :rtype: logging.Logger
    """
    return logging.getLogger(f'worldline.{name}')
