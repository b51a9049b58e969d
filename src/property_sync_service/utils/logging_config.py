import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from property_sync_service.config import Environment, settings

# Configure logger
logger = logging.getLogger("property_sync_service")

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestContext:
    """Per-task storage for request context such as request ID"""

    @classmethod
    def get_request_id(cls) -> Optional[str]:
        return _request_id.get()

    @classmethod
    def set_request_id(cls, request_id: str) -> None:
        _request_id.set(request_id)

    @classmethod
    def clear_request_id(cls) -> None:
        _request_id.set(None)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID to each request"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        RequestContext.set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            RequestContext.clear_request_id()
        response.headers["X-Request-ID"] = request_id
        return response


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "environment": str(settings.ENVIRONMENT.value),
        }
        if request_id := RequestContext.get_request_id():
            log_record["request_id"] = request_id
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        if hasattr(record, "extra") and record.extra:
            log_record.update(record.extra)
        return json.dumps(log_record, default=str)


def configure_logging() -> None:
    """Configure logging for the application and command-line entry points"""
    log_level = getattr(logging, settings.LOGGING_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    if settings.ENVIRONMENT == Environment.PRODUCTION:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    root_logger.setLevel(log_level)

    logger.setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    # Pillow logs every decoder plugin it loads at DEBUG
    logging.getLogger("PIL").setLevel(logging.INFO)

    logger.info(
        f"Logging configured with level {settings.LOGGING_LEVEL} "
        f"and {'JSON' if settings.is_production() else 'plain text'} format"
    )
