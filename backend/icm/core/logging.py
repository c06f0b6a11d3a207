# backend/icm/core/logging.py
import logging
from logging.config import dictConfig

LOGGER_NAME = "icm"


def configure_logging(level: str = "INFO") -> None:
    level = (level or "INFO").upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "verbose": {
                    "format": "{levelname} {asctime} {name} {message}",
                    "style": "{",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "verbose",
                },
            },
            "loggers": {
                LOGGER_NAME: {
                    "handlers": ["console"],
                    "level": level,
                    "propagate": False,
                },
            },
        }
    )


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)
