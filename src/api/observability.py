import json
import logging
import os
import re
import time
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from prometheus_fastapi_instrumentator import Instrumentator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
caller_id_var: ContextVar[str] = ContextVar("caller_id", default="")
review_request_id_var: ContextVar[str] = ContextVar("review_request_id", default="")

LOG_CONTEXT_VARS: dict[str, ContextVar[str]] = {
    "correlation_id": correlation_id_var,
    "request_id": request_id_var,
    "caller_id": caller_id_var,
    "review_request_id": review_request_id_var,
}

_REVIEW_REQUEST_PATH = re.compile(r"^/review-requests/(?P<request_id>[^/]+)")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the bound request context.

    ``extra={"extra_fields": {...}}`` on a log call is merged into the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "service": os.getenv("SERVICE_NAME", "legal-review-workflow"),
            "environment": os.getenv("ENVIRONMENT", "local"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name, var in LOG_CONTEXT_VARS.items():
            entry[name] = var.get() or None
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            entry.update(extra_fields)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(
            {key: value for key, value in entry.items() if value is not None}, default=str
        )


def configure_logging() -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)


def review_request_id_from_path(path: str) -> str:
    match = _REVIEW_REQUEST_PATH.match(path)
    return match.group("request_id") if match else ""


def _bind_request_context(request: Request) -> dict[ContextVar[str], Token[str]]:
    values = {
        correlation_id_var: request.headers.get("X-Correlation-Id")
        or f"corr_{uuid4().hex[:12]}",
        request_id_var: request.headers.get("X-Request-Id") or f"req_{uuid4().hex[:12]}",
        caller_id_var: request.headers.get("X-Caller-Id", ""),
        review_request_id_var: review_request_id_from_path(request.url.path),
    }
    return {var: var.set(value) for var, value in values.items()}


def setup_observability(app: FastAPI) -> None:
    configure_logging()
    Instrumentator(excluded_handlers=["/metrics", "/health"]).instrument(app).expose(app)
    access_logger = logging.getLogger("http.access")

    @app.middleware("http")
    async def _review_request_context_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        tokens = _bind_request_context(request)
        correlation_id = correlation_id_var.get()
        request_id = request_id_var.get()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            access_logger.info(
                "request.completed",
                extra={
                    "extra_fields": {
                        "http_method": request.method,
                        "endpoint": request.url.path,
                        "status_code": status_code,
                        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                },
            )
            for var, token in tokens.items():
                var.reset(token)

        response.headers["X-Correlation-Id"] = correlation_id
        response.headers["X-Request-Id"] = request_id
        return response
