import logging
import time
from datetime import datetime, timezone

from fastapi import Request
from pythonjsonlogger.json import JsonFormatter
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings

performance_logger = logging.getLogger("app.performance")


class JSONLogFormatter(JsonFormatter):
    """One JSON object per record with an ISO-8601 UTC ``timestamp``, upper-case ``level`` and ``service``"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("timestamp"):
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["timestamp"] = created.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        log_record["level"] = (log_record.get("level") or record.levelname).upper()
        log_record.setdefault("service", settings.APP_NAME)


def setup_logging() -> None:
    root = logging.getLogger()
    # Installed once per process; re-imports in tests must not stack handlers
    if not any(isinstance(h.formatter, JSONLogFormatter) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JSONLogFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
        root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL)
    # boto's wire-level debug output would otherwise flood the log at DEBUG
    for noisy in ("botocore", "boto3", "urllib3"):
        logging.getLogger(noisy).setLevel(max(logging.INFO, root.level))


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Times each request up to the response headers and flags slow ones.

    Zip exports stream after the headers, so their figure is the walk and
    authorization cost, not the transfer.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        if elapsed > settings.SLOW_REQUEST_SECONDS:
            performance_logger.warning(
                f"Slow request: {request.method} {request.url.path} took {elapsed:.4f}s",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(elapsed * 1000, 1),
                },
            )
        return response
