"""Logging configuration for the RankFactor service and scripts.

The service writes one JSON object per record. Library modules attach
structured fields (user and item IDs, epoch losses, latencies) through
``extra``; ``JSONFormatter`` lifts them into the record, turning numpy scalars
and arrays into plain JSON values. While a request is being served its ID is
held in a context variable, and ``RequestContextFilter`` stamps it on every
record, so a feedback update logged deep in the recommender can be traced back
to the HTTP call that caused it.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import numpy as np
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Line format for human-readable logs
PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

REQUEST_ID_HEADER = "X-Request-ID"

# Methods that change the loaded model
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


def _json_value(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    return str(value)


class RequestContextFilter(logging.Filter):
    """Stamps the ID of the request being served on each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and value is not None:
                log_data[key] = value

        return json.dumps(log_data, default=_json_value)


def setup_logging(log_level: Union[str, int] = "INFO", json_format: bool = True) -> None:
    """Configure the root logger.

    The service logs JSON records; command-line scripts pass
    ``json_format=False`` to get plain ``PLAIN_FORMAT`` lines instead.

    Args:
        log_level: Level name (DEBUG, INFO, ...) or numeric level.
        json_format: Format records as JSON.

    Raises:
        ValueError: If ``log_level`` names no logging level.
    """
    if isinstance(log_level, str):
        level = logging.getLevelName(log_level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {log_level}")
    else:
        level = log_level

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)

    # Request lines come from RequestLoggingMiddleware
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one record per request and tags it with a request ID.

    The ID is taken from an incoming ``X-Request-ID`` header when present and
    echoed on the response. Updates to the model are logged at INFO; reads
    (scores, recommendations, status) are frequent and logged at DEBUG.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        start_time = time.time()
        logger = logging.getLogger("src.api.requests")
        level = logging.INFO if request.method in MUTATING_METHODS else logging.DEBUG

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error_type": type(e).__name__,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                },
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)

        # error responses are logged even for reads
        if response.status_code >= 400:
            level = max(level, logging.WARNING)
        logger.log(
            level,
            "Request completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query": str(request.query_params) or None,
                "status_code": response.status_code,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
