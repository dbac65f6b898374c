import logging
import logging.config
import os
import sys
from typing import IO, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("VOLLEY_LOG_FILE")


def build_config(
    level: str = LOG_LEVEL, log_file: Optional[str] = LOG_FILE, stream: Optional[IO[str]] = None
) -> dict:
    handlers = ["console"]
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": stream or sys.stdout,
            },
        },
        "loggers": {},
    }
    if log_file:
        config["handlers"]["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": log_file,
            "mode": "a",
        }
        handlers.append("file")

    config["loggers"] = {
        "volley": {
            "level": level.upper(),
            "handlers": handlers,
            "propagate": False,  # Don't pass 'volley' logs up to the root logger
        },
        # One line per request otherwise
        "httpx": {
            "level": "WARNING",
            "handlers": handlers,
            "propagate": False,
        },
        "httpcore": {
            "level": "WARNING",
            "handlers": handlers,
            "propagate": False,
        },
    }
    # Default for all other loggers
    config["root"] = {"level": "WARNING", "handlers": handlers}
    return config


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """ Apply the logging configuration; console output goes to ``stream`` (stdout by default). """
    logging.config.dictConfig(build_config(level or LOG_LEVEL, log_file or LOG_FILE, stream))
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
