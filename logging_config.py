import json
import logging
import sys
from datetime import datetime, timezone

from config import LoggerSettings

LOGGER_NAME = "expensetrace"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _build_handler(output: str) -> logging.Handler:
    if output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if output == "stderr":
        return logging.StreamHandler(sys.stderr)
    if output == "discard":
        return logging.NullHandler()
    try:
        return logging.FileHandler(output, mode="a", encoding="utf-8")
    except OSError:
        return logging.StreamHandler(sys.stdout)


def configure_logging(settings: LoggerSettings) -> logging.Logger:
    """
    Build the application logger from settings. Services log through the
    logger handed to them as ``log``; without one they fall back to their
    module logger, which this handler does not see.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = _build_handler(settings.output)
    if settings.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(_LEVELS[settings.level])
    logger.propagate = False
    return logger
