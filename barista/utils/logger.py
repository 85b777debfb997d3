import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class Logger:
    """
    Thin wrapper around a stdlib logger.

    The console handler lives on the top-level package logger ("barista"),
    so "barista.client.session" and friends propagate to it and each record
    is printed once.
    """

    def __init__(self, name: str = "barista", level: int = logging.DEBUG):
        root = logging.getLogger(name.split(".", 1)[0])
        if not root.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
            )
            root.addHandler(handler)
            root.setLevel(level)
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._logger.name

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Log at ERROR level with the active traceback attached."""
        self._logger.exception(msg, *args, **kwargs)
