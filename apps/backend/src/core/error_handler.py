"""Error envelope, correlation ids and structured logging for the EDEN API.

Every failure that reaches FastAPI leaves as an ``ErrorResponse`` carrying the
request's correlation id. Production responses expose only ``correlation_id``
and ``type``; other environments add details, tracebacks and validation errors.
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import ArtifactsNotFoundError, DomainError, SessionNotFoundError
from core.security_config import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse


_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

REDACTED = "[REDACTED]"

logger = logging.getLogger(__name__)


def get_correlation_id() -> str:
    """Correlation id of the current context, created on first use."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Logger facade that tags records with the correlation id.

    Keyword fields are redacted with :func:`is_sensitive_key` and attached to
    the record as ``structured_data``; outside production they are also
    appended to the message as ``key=value`` pairs.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields, exc_info=True)

    def _emit(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        exc_info: bool = False,
    ) -> None:
        correlation_id = get_correlation_id()
        clean = self._sanitize_data(fields)

        text = message
        if get_settings().ENVIRONMENT != "production":
            # JsonFormatter merges structured_data in production
            pairs = [f"{key}={value}" for key, value in clean.items()]
            text = " ".join([f"[{correlation_id}] {message}", *pairs])

        self.logger.log(
            level,
            text,
            extra={
                "structured_data": {
                    "correlation_id": correlation_id,
                    "message": message,
                    **clean,
                }
            },
            exc_info=exc_info,
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(data, dict) or not data:
            return {}

        header = self._redact_header_like(data)
        if header is not None:
            return header

        return {
            key: REDACTED if is_sensitive_key(key) else self._sanitize_value(value)
            for key, value in data.items()
        }

    def _sanitize_value(self, value: Any) -> Any:
        match value:
            case dict():
                return self._sanitize_data(value)
            case list():
                return [self._sanitize_value(item) for item in value]
        return value

    def _redact_header_like(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Redact a ``{"name"|"key": ..., "value": ...}`` pair with a sensitive name.

        Returns None when ``data`` is not such a pair or its name is harmless.
        """
        name = data.get("name", data.get("key"))
        if "value" not in data or not isinstance(name, str):
            return None
        if not is_sensitive_key(name):
            return None
        return {
            key: REDACTED if key == "value" or is_sensitive_key(key) else value
            for key, value in data.items()
        }


structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Turn exceptions escaping the routing layer into the error envelope."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


@dataclass(frozen=True, slots=True)
class _ErrorKind:
    status_code: int
    error_type: str
    message: str


def _classify(exc: Exception) -> _ErrorKind:
    match exc:
        case StarletteHTTPException():
            return _ErrorKind(exc.status_code, "http_error", "An HTTP error occurred")
        case ValidationError() | RequestValidationError():
            return _ErrorKind(422, "validation_error", "Invalid request data provided")
        case IntegrityError():
            return _ErrorKind(
                409, "integrity_error", "A data integrity constraint was violated"
            )
        case SessionNotFoundError():
            return _ErrorKind(
                404, "domain_error", "The requested chat session was not found"
            )
        case ArtifactsNotFoundError():
            return _ErrorKind(
                404, "domain_error", "No generated code artifacts are available"
            )
        case DomainError():
            return _ErrorKind(400, "domain_error", "Domain error")
    return _ErrorKind(500, "internal_server_error", "An internal error occurred")


def _build_error_response(
    *,
    correlation_id: str,
    error_type: str,
    message: str,
    environment: str,
    details: dict[str, Any] | None = None,
    traceback_str: str | None = None,
    exception_type: str | None = None,
    validation_errors: Any | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Error envelope holding only the fields ``environment`` may expose."""
    candidates: dict[str, Any] = {
        "details": details or None,
        "traceback": traceback_str or None,
        "exception_type": exception_type or None,
        "validation_errors": validation_errors,
    }
    allowed = get_allowed_error_fields(environment)
    error_body: dict[str, Any] = {"correlation_id": correlation_id, "type": error_type}
    error_body.update(
        (field, value)
        for field, value in candidates.items()
        if field in allowed and value is not None
    )

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=error_body).model_dump(),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler installed for every exception type the app raises."""
    environment = get_settings().ENVIRONMENT
    kind = _classify(exc)

    details: dict[str, Any] | None = None
    validation_errors: Any | None = None
    traceback_str: str | None = None
    exception_type: str | None = None

    match kind.error_type:
        case "http_error":
            details = {"detail": exc.detail}  # type: ignore[attr-defined]
            exception_type = type(exc).__name__
        case "validation_error":
            validation_errors = exc.errors()  # type: ignore[attr-defined]
            structured_logger.warning(
                "Validation error", validation_errors=validation_errors
            )
        case "integrity_error":
            structured_logger.error("Integrity constraint violation", error=str(exc))
        case "domain_error":
            details = {"detail": str(exc)}
            structured_logger.warning(
                "Domain error", error_type=type(exc).__name__, domain_message=str(exc)
            )
        case _:
            structured_logger.exception(
                "Unhandled exception", exception_type=type(exc).__name__, error=str(exc)
            )
            exception_type = type(exc).__name__
            if environment != "production":
                traceback_str = "".join(traceback.format_exception(exc)).strip()

    return _build_error_response(
        correlation_id=get_correlation_id(),
        error_type=kind.error_type,
        message=kind.message,
        environment=environment,
        details=details,
        traceback_str=traceback_str,
        exception_type=exception_type,
        validation_errors=validation_errors,
        status_code=kind.status_code,
    )


def setup_logging() -> None:
    """Install one stdout handler on the root logger; later calls are no-ops."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    environment = get_settings().ENVIRONMENT
    log_level = logging.DEBUG if environment == "development" else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if environment == "production":
        handler.setFormatter(
            JsonFormatter(
                "{asctime}{levelname}{name}{message}",
                style="{",
                rename_fields={"asctime": "timestamp", "levelname": "level"},
            )
        )
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    # httpx logs every upstream request at INFO, including streaming chunks
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if environment == "production":
        for noisy in ("uvicorn.access", "sqlalchemy.engine"):
            logging.getLogger(noisy).setLevel(logging.WARNING)
