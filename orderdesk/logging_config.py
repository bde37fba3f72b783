"""Logging setup for the API process and scripts"""

import logging
import sys
from orderdesk.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite")

_HANDLER_FLAG = "_orderdesk_handler"


def _tag(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_FLAG, True)
    return handler


def setup_logging(level: str = None):
    """
    Attach stdout (and optional file) handlers to the root logger.

    Safe to call more than once: handlers installed by an earlier call are
    replaced, not duplicated.
    """
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    for handler in [h for h in root_logger.handlers if getattr(h, _HANDLER_FLAG, False)]:
        root_logger.removeHandler(handler)
        handler.close()

    handlers = [_tag(logging.StreamHandler(sys.stdout))]
    if settings.LOG_FILE:
        handlers.append(_tag(logging.FileHandler(settings.LOG_FILE)))

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    logging.getLogger("orderdesk").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    # engine echo follows DEBUG
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
