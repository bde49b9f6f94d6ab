"""Logging setup for the API and its scheduled jobs.

One stdout handler on the root logger. Production emits one JSON object per
line, tagged with the service name so records from the API and the cron
callers can be told apart; other environments get a readable single line.
"""
import logging
import logging.config
from typing import Any, Dict, Optional

from .settings import Settings, get_settings

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Chatty third-party loggers, capped regardless of LOG_LEVEL
QUIET_LOGGERS = {
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "httpx": "WARNING",
    "stripe": "WARNING",
}


def _json_formatter(service_name: Optional[str]) -> Dict[str, Any]:
    formatter: Dict[str, Any] = {
        "()": "pythonjsonlogger.json.JsonFormatter",
        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
        "datefmt": DATE_FORMAT,
        "rename_fields": {"asctime": "timestamp", "levelname": "level", "name": "logger"},
    }
    if service_name:
        formatter["static_fields"] = {"service": service_name}
    return formatter


def _console_formatter(service_name: Optional[str]) -> Dict[str, Any]:
    prefix = f"[{service_name}] " if service_name else ""
    return {"format": f"%(asctime)s {prefix}%(levelname)-7s %(name)s: %(message)s", "datefmt": DATE_FORMAT}


def get_logging_config(service_name: Optional[str] = None, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Build the dictConfig mapping for the current environment.

    Args:
        service_name: Added to every record (JSON field or console prefix)
        settings: Application settings; LOG_LEVEL and ENVIRONMENT are read

    Returns:
        Mapping for ``logging.config.dictConfig``
    """
    settings = settings or get_settings()
    style = "json" if settings.environment == "production" else "console"
    formatter = _json_formatter(service_name) if style == "json" else _console_formatter(service_name)

    loggers = {"affiliatebase": {"level": settings.log_level}}
    loggers.update({name: {"level": level} for name, level in QUIET_LOGGERS.items()})

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {style: formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": style,
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": loggers,
        "root": {"level": settings.log_level, "handlers": ["console"]},
    }


def setup_logging(service_name: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    logging.config.dictConfig(get_logging_config(service_name, settings))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
