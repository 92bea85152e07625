import logging
import logging.config
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from fansync.environment import EnvironmentName
from settings import settings

JSON_FORMAT = (
    "%(module)s %(asctime)s %(levelname)s %(processName)s %(taskName)s %(name)s "
    "%(funcName)s %(filename)s %(lineno)d %(message)s"
)
QUIET_LOGGERS = ("aiohttp", "asyncio", "sqlalchemy.engine", "python_multipart", "uvicorn.access")

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "jsonFormat": {
            "format": JSON_FORMAT,
            "class": "logging_config.CustomJsonFormatter",
        },
    },
    "handlers": {
        "jsonStreamHandler": {
            "formatter": "jsonFormat",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "": {"handlers": ["jsonStreamHandler"], "level": settings.logging.level, "propagate": False},
        **{name: {"level": logging.WARNING} for name in QUIET_LOGGERS},
    },
}
LOCAL_LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "default": {
            "formatter": "standard",
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "": {
            "handlers": ["default"],
            "level": settings.logging.level,
            "propagate": False,
        },
        **{name: {"level": logging.WARNING} for name in QUIET_LOGGERS},
    },
}


class CustomJsonFormatter(JsonFormatter):
    """JSON logs, indented for reading when running locally with pretty output enabled."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._pretty = settings.environment == EnvironmentName.DEVELOPMENT and settings.logging.use_pretty_json
        if self._pretty:
            self.json_indent = 2

    def format(self, record: logging.LogRecord) -> str:
        result = super().format(record)
        if self._pretty:
            result = result.replace("\\n", "\n\t\t")
        return result


def setup_logging() -> None:
    """Configure the root logger: JSON when ``LOGGING_USE_CONFIG`` is set, plain text otherwise."""
    logging.config.dictConfig(LOGGING_CONFIG if settings.logging.use_config is True else LOCAL_LOGGING_CONFIG)
    logging.captureWarnings(True)
    logging.disable(logging.NOTSET)
