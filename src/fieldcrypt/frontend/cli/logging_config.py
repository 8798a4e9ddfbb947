"""Logging setup for the command line. Reports go to stdout, logs to stderr."""

import logging
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class StderrHandler(logging.StreamHandler):
    # resolves sys.stderr at emit time, so redirected streams are honoured

    def __init__(self, level=logging.NOTSET):
        logging.Handler.__init__(self, level)

    @property
    def stream(self):
        return sys.stderr


def configure_logging(level: int = logging.WARNING) -> logging.Logger:
    # Handler goes on the package logger; the root logger is left to embedders.
    logger = logging.getLogger("fieldcrypt")
    logger.setLevel(level)
    if not any(isinstance(h, StderrHandler) for h in logger.handlers):
        handler = StderrHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(handler)
    return logger
