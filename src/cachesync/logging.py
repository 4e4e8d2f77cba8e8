"""Logging setup for cachesync.

Every record carries a `region` field, bound by `region_context` while a
region is being synced ("-" outside a sync). Development runs get colored
lines on stderr; production runs write one Cloud Logging JSON object per
line to stdout so Cloud Run picks up severity and the region field.
"""

import json
import logging
import sys
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger

NO_REGION = "-"

SEVERITY = {
    "TRACE": "DEBUG",
    "SUCCESS": "INFO",
}

# Chatty libraries and the level they log at unless DEBUG is requested
LIBRARY_LEVELS = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "google.auth": "WARNING",
    "urllib3": "WARNING",
    "uvicorn": None,
    "uvicorn.error": None,
    "uvicorn.access": None,
}

DEV_FORMAT = (
    "<green>{time:HH:mm:ss}</green> "
    "<level>{level: <7}</level> "
    "<magenta>[{extra[region]}]</magenta> "
    "<cyan>{name}</cyan> "
    "<level>{message}</level>\n"
    "{exception}"
)


@contextmanager
def region_context(region: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with `region`."""
    with logger.contextualize(region=region):
        yield


def _describe_exception(exception: Any) -> dict[str, Any]:
    exc_type, value, tb = exception
    return {
        "type": exc_type.__name__ if exc_type else None,
        "value": str(value) if value is not None else None,
        "traceback": "".join(traceback.format_exception(exc_type, value, tb)) if tb else None,
    }


def _cloud_logging_serializer(record: dict[str, Any]) -> str:
    """Render a loguru record as a Cloud Logging JSON line.

    Bound extras (region, code, ...) become top-level fields, except names
    starting with an underscore.
    """
    level = record["level"].name
    entry: dict[str, Any] = {
        "severity": SEVERITY.get(level, level),
        "message": record["message"],
        "time": record["time"].isoformat(),
        "logger": record["name"],
    }
    entry.update(
        (key, value) for key, value in record.get("extra", {}).items() if not key.startswith("_")
    )
    if record["exception"] is not None:
        entry["exception"] = _describe_exception(record["exception"])
    return json.dumps(entry, default=str)


def _write_json(message: Any) -> None:
    print(_cloud_logging_serializer(message.record), file=sys.stdout, flush=True)


class _LoguruBridge(logging.Handler):
    """Forwards standard library records (uvicorn, httpx, google-auth) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        depth, frame = 2, logging.currentframe()
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            depth += 1
            frame = frame.f_back

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(*, is_production: bool = False, log_level: str = "INFO") -> None:
    """Install the loguru sink for this process and bridge stdlib logging.

    Safe to call more than once; each call replaces the previous sinks.
    """
    logger.remove()
    logger.configure(extra={"region": NO_REGION})

    if is_production:
        logger.add(_write_json, level=log_level, format="{message}", diagnose=False)
    else:
        logger.add(sys.stderr, level=log_level, format=DEV_FORMAT, colorize=True)

    bridge = _LoguruBridge()
    logging.basicConfig(handlers=[bridge], level=log_level, force=True)
    for name, quiet_level in LIBRARY_LEVELS.items():
        library_logger = logging.getLogger(name)
        library_logger.handlers = [bridge]
        library_logger.propagate = False
        if log_level == "DEBUG" or quiet_level is None:
            library_logger.setLevel(log_level)
        else:
            library_logger.setLevel(quiet_level)
