"""Logging setup for the API server and the worker.

Every application log line carries the request ID of the HTTP request that
produced it (``-`` outside a request).
"""

import logging
import sys

from authserver.api.middleware import RequestContextFilter
from authserver.config import settings

DEV_FORMAT = "%(levelname)-8s [%(request_id)s] %(name)s: %(message)s"
PROD_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"

NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "aiosmtplib")


def _stdout(formatter: str, *filters: str) -> dict:
    handler = {"class": "logging.StreamHandler", "formatter": formatter, "stream": "ext://sys.stdout"}
    if filters:
        handler["filters"] = list(filters)
    return handler


def get_uvicorn_log_config() -> dict:
    """dictConfig for uvicorn, with the request ID on application records."""
    if settings.is_development:
        access_fmt = '%(levelprefix)s "%(request_line)s" %(status_code)s'
        app_fmt = "%(levelprefix)s [%(request_id)s] %(name)s: %(message)s"
    else:
        access_fmt = '%(asctime)s %(levelprefix)s %(client_addr)s "%(request_line)s" %(status_code)s'
        app_fmt = "%(asctime)s %(levelprefix)s [%(request_id)s] %(name)s: %(message)s"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": {"()": RequestContextFilter}},
        "formatters": {
            "access": {"()": "uvicorn.logging.AccessFormatter", "fmt": access_fmt},
            "app": {"()": "uvicorn.logging.DefaultFormatter", "fmt": app_fmt},
        },
        "handlers": {
            "access": _stdout("access"),
            "app": _stdout("app", "request_context"),
        },
        "loggers": {
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["app"], "level": "INFO", "propagate": False},
            **{name: {"level": "WARNING"} for name in NOISY_LOGGERS},
        },
        "root": {"handlers": ["app"], "level": settings.log_level},
    }


def setup_logging() -> None:
    """Configure root logging for processes not run under uvicorn."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(
        logging.Formatter(DEV_FORMAT if settings.is_development else PROD_FORMAT)
    )
    logging.basicConfig(level=settings.log_level, handlers=[handler])

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
