"""Structured logging with redaction of viewer identity and document links."""

import logging
import re
import sys
import time
from typing import Any, cast

import structlog

from src.config import settings

_REDACTIONS = [
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "[EMAIL]"),
    (
        re.compile(r"https?://(?:www\.)?docsend\.com/view/[A-Za-z0-9]+(?:/d/[A-Za-z0-9]+)?(?:\?\S*)?"),
        "[DOCUMENT_URL]",
    ),
]
# Keys whose values are one-time codes or credentials and never logged verbatim
_SECRET_KEYS = frozenset({"code", "otp", "password", "viewer_email"})

# Third-party loggers and the level below which they are silenced
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "websockets": logging.WARNING,
    "PIL": logging.WARNING,
    "img2pdf": logging.ERROR,
}


def redact_text(value: str) -> str:
    """Mask e-mail addresses and document links in free text."""
    for pattern, replacement in _REDACTIONS:
        value = pattern.sub(replacement, value)
    return value


def redact_sensitive(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor that redacts sensitive event fields."""
    for key, value in event_dict.items():
        if key in _SECRET_KEYS and value:
            event_dict[key] = "[REDACTED]"
        elif isinstance(value, str):
            event_dict[key] = redact_text(value)
    return event_dict


def _renderer() -> Any:
    if settings.debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging() -> None:
    """Route structlog through stdlib logging; redaction runs before rendering."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_sensitive,
            _renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance for the given name."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


class AccessLogMiddleware:
    """ASGI middleware writing one access line per HTTP request, query string omitted."""

    def __init__(self, app: Any) -> None:
        self.app = app
        self.logger = get_logger("access")

    async def __call__(self, scope: dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        response_status = 0

        async def capture_status(message: dict[str, Any]) -> None:
            nonlocal response_status
            if message["type"] == "http.response.start":
                response_status = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, capture_status)
        finally:
            self.logger.info(
                "request",
                method=scope.get("method", "-"),
                path=scope.get("path", "-"),
                status=response_status,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
