"""
Logging setup for the API Copilot backend.

Production writes one JSON object per line; development writes colored
console lines. Both surface the tenant, conversation and request ids that
the engine passes through `extra=`.
"""

import json
import logging
import sys
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apicopilot.core.config import settings

# Keys the engine attaches to records via `extra=`
CONTEXT_FIELDS = ("tenant_id", "conversation_id", "request_id")


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):

    def __init__(self, service_name: str = "apicopilot"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": settings.ENVIRONMENT,
            **record_context(record),
        }

        http = getattr(record, "http", None)
        if http:
            log_data["http"] = http

        if record.exc_info and record.exc_info[0]:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """`time | level | logger | message [tenant=.. conversation=..]`"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{timestamp} | {record.levelname:8} | {record.name} | {record.getMessage()}"

        context = record_context(record)
        if context:
            line += " [" + " ".join(f"{key.replace('_id', '')}={value}" for key, value in context.items()) + "]"

        if record.exc_info:
            line += "\n" + traceback.format_exception(*record.exc_info)[-1].strip()

        return f"{color}{line}{self.RESET}"


def setup_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """JSON in production, colored output elsewhere; DEBUG level when settings.DEBUG."""
    level = log_level or ("DEBUG" if settings.DEBUG else "INFO")
    use_json = json_logs if json_logs is not None else settings.ENVIRONMENT.lower() == "production"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else ColoredFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Vendor SDKs and the HTTP client log every request at INFO
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "google_genai", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class RequestLoggingMiddleware:
    """
    Pure ASGI middleware: one log line per HTTP request with status and
    timing. The request id is exposed on `request.state.request_id`.
    """

    def __init__(self, app):
        self.app = app
        self.logger = logging.getLogger("apicopilot.http")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http" or scope.get("path") == "/health":
            await self.app(scope, receive, send)
            return

        request_id = uuid.uuid4().hex[:8]
        scope.setdefault("state", {})["request_id"] = request_id
        start_time = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 1)
            tenant_id = dict(scope.get("headers") or []).get(b"x-tenant-id")
            self.logger.log(
                logging.WARNING if status_code >= 400 else logging.INFO,
                f"{scope.get('method')} {scope.get('path')} {status_code} {duration_ms}ms",
                extra={
                    "request_id": request_id,
                    "tenant_id": tenant_id.decode("latin-1") if tenant_id else None,
                    "http": {
                        "method": scope.get("method"),
                        "path": scope.get("path"),
                        "status": status_code,
                        "duration_ms": duration_ms,
                    },
                },
            )
