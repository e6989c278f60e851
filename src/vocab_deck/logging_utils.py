import logging
import os

LOGGER_NAME = "vocab_deck"
LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class LogsHandler:
    """Single entry point for the package loggers.

    Everything logs under the ``vocab_deck`` logger so one call to
    ``setup_logging`` configures the whole package.
    """

    def __init__(self, root_name: str = LOGGER_NAME):
        self.root_name = root_name
        self._configured = False

    def setup_logging(self, level: str | None = None) -> logging.Logger:
        # LOG_LEVEL overrides the argument
        level_name = (os.getenv("LOG_LEVEL") or level or "info").lower()
        logger = logging.getLogger(self.root_name)
        logger.setLevel(_LEVELS.get(level_name, logging.INFO))
        if not self._configured:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)
            logger.propagate = False
            self._configured = True
        logger.debug("Logging configured: level=%s", level_name)
        return logger

    def get_logger(self, name: str | None = None) -> logging.Logger:
        if not name:
            return logging.getLogger(self.root_name)
        return logging.getLogger(f"{self.root_name}.{name}")


logs_handler = LogsHandler()
