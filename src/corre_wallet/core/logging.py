"""Loguru setup for the wallet service.

Every record carries the service metadata and, when set, the ``request_id`` bound by
``request_context_middleware`` and the ``owner_id`` bound by a wallet unit of work.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Awaitable, Callable, Dict
from uuid import uuid4

from fastapi import Request, Response
from loguru import logger
from opentelemetry import trace

REQUEST_ID_HEADER = "X-Request-ID"

_CONTEXT_KEYS = ("request_id", "owner_id")
_STDLIB_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}
_NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}
_TEXT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[request_id]} {extra[owner_id]} | {message} | {extra}"
)


class InterceptHandler(logging.Handler):
    """Send stdlib records (uvicorn, sqlalchemy, alembic) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {key: value for key, value in record.__dict__.items() if key not in _STDLIB_RECORD_ATTRS}
        message = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.bind(**extra).opt(depth=6, exception=record.exc_info).log(level, message)


def _json_line(record: Dict[str, Any], metadata: Dict[str, str]) -> str:
    extra = dict(record["extra"])
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
    }
    for key in _CONTEXT_KEYS:
        value = extra.pop(key, None)
        if value:
            payload[key] = value

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    payload.update(extra)
    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)
    return json.dumps(payload, default=str)


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    json_output: bool | None = None,
) -> None:
    """Install the Loguru sink and route stdlib logging through it.

    JSON lines are the default outside development; ``json_output`` overrides that.
    """

    metadata = {"service": service_name, "environment": environment, "version": version}
    as_json = environment != "development" if json_output is None else json_output

    logger.remove()
    logger.configure(extra={key: "" for key in _CONTEXT_KEYS})
    if as_json:
        logger.add(
            lambda message: sys.stdout.write(_json_line(message.record, metadata) + "\n"),
            level=level.upper(),
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(sys.stderr, level=level.upper(), format=_TEXT_FORMAT, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, noisy_level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Tag every log line emitted while serving a request with its request id."""

    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
