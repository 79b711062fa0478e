# esign_app/utils/logger.py

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from esign_app.core.config import Settings

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def add_request_id(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag every event with the id of the request being served."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def bind_service_context(service: str, environment: str):
    def add_service_context(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add_service_context


def _formatter(processors: List[Any], renderer: Any) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=processors + [renderer],
        foreign_pre_chain=processors,
    )


def configure_logging(settings: Settings, service: str) -> None:
    """
    Route structlog and stdlib records through one set of root handlers.

    Console output is JSON in production or when ``log_json`` is set, plain
    key/value text otherwise. ``log_file`` adds a JSON file handler.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    use_json = settings.log_json or settings.environment.lower() == "production"

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        bind_service_context(service, settings.environment),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if use_json:
        console_renderer = structlog.processors.JSONRenderer()
    else:
        console_renderer = structlog.dev.ConsoleRenderer(
            colors=False, exception_formatter=structlog.dev.plain_traceback
        )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(_formatter(processors, console_renderer))
    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setFormatter(_formatter(processors, structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(level)

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Echoes or assigns ``X-Request-ID``, logs one access line per request and
    turns anything the exception handlers missed into a bare 500.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        access_log = get_logger("esign.access")
        started = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception:
                access_log.exception(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                return JSONResponse(
                    status_code=500,
                    content={"error": "Internal server error"},
                    headers={REQUEST_ID_HEADER: request_id},
                )

            access_log.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)


def setup_app_logging(app: FastAPI, settings: Settings, service: str = "esign-gateway") -> None:
    """Configure logging and attach the request id middleware to ``app``."""
    configure_logging(settings, service)
    app.add_middleware(RequestIdMiddleware)
