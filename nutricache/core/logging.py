# nutricache/core/logging.py
import logging
import sys
from typing import Iterable
import colorlog

LOG_FORMAT = "%(log_color)s%(asctime)s %(levelname)-8s [%(name)s]%(reset)s %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Third-party loggers that flood DEBUG output (one line per request / per pool event)
NOISY_LOGGERS = ("pymongo", "httpx", "httpcore", "asyncio")


def configure_logging(level=logging.INFO, noisy: Iterable[str] = NOISY_LOGGERS):
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setFormatter(colorlog.ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # uvicorn follows the app level, libraries stay at WARNING
    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    for name in noisy:
        logging.getLogger(name).setLevel(logging.WARNING)
