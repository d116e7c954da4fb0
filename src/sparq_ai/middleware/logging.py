"""Logging configuration and request logging middleware."""

import json
import logging
import os
import sys
import time
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from sparq_ai.core.logging_utils import get_logger

logger = get_logger(__name__)

# Third-party loggers that are chatty below WARNING
NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "asyncio",
    "openai",
    "redis",
    "sqlalchemy.engine",
)

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; event fields are kept as structured data."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
            for key, value in getattr(record, "fields", {}).items():
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Level-colored console output for local development."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def formatMessage(self, record: logging.LogRecord) -> str:
        # Color a copy of the level name; other handlers share the record
        color = self.COLORS.get(record.levelno, "")
        values = {**record.__dict__, "levelname": f"{color}{record.levelname:8}{self.RESET}"}
        return self._style._fmt % values


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (honoring ``X-Request-ID``) and logs its outcome."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        request_logger = logger.with_context(request_id=request_id)
        started = time.perf_counter()

        def elapsed_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        try:
            response = await call_next(request)
        except Exception:
            request_logger.exception(
                "HTTP_REQUEST_FAILED",
                method=request.method,
                path=request.url.path,
                duration_ms=elapsed_ms(),
            )
            raise

        request_logger.info(
            "HTTP_REQUEST",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=elapsed_ms(),
        )
        response.headers["X-Request-ID"] = request_id
        return response


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format.lower() == "json":
        return JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S")
    if sys.stdout.isatty() and os.environ.get("TERM"):
        return ColoredFormatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        log_format: "text" for development, "json" for log shipping
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter(log_format))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("LOGGING_CONFIGURED", log_level=logging.getLevelName(level), log_format=log_format)
