"""Application errors and their JSON rendering.

Every error carries a machine-readable ``code`` and an HTTP status; subclasses
set both as class attributes. Handlers render them as
``{"code": ..., "message": ..., "details": {...}}``.
"""

from dataclasses import asdict, dataclass
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    code: str = "INTERNAL_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(AppException):
    """Deploy-time problem: unknown task kind, invalid options, broken model map.

    Never retried; the configuration has to be fixed.
    """

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, details={"field": field} if field else None)


class ProviderError(AppException):
    """One model attempt failed (provider error, timeout, 429 or unusable payload)."""

    code = "PROVIDER_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str,
        model: str,
        provider_status: int | None = None,
        rate_limited: bool = False,
    ):
        self.model = model
        self.provider_status = provider_status
        self.rate_limited = rate_limited
        details: dict[str, Any] = {"model": model}
        if provider_status is not None:
            details["provider_status"] = provider_status
        if rate_limited:
            details["rate_limited"] = True
        super().__init__(message, details=details)


@dataclass(frozen=True)
class ProviderFailure:
    """One entry of the router's failure trail."""

    model: str
    error_type: str
    message: str
    provider_status: int | None = None
    rate_limited: bool = False

    @classmethod
    def from_exception(cls, model: str, error: Exception) -> "ProviderFailure":
        if isinstance(error, ProviderError):
            return cls(
                model=model,
                error_type=type(error).__name__,
                message=error.message,
                provider_status=error.provider_status,
                rate_limited=error.rate_limited,
            )
        return cls(model=model, error_type=type(error).__name__, message=str(error))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ExhaustionError(AppException):
    """Every candidate model for a task failed."""

    code = "ALL_PROVIDERS_EXHAUSTED"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, task: str, failures: list[ProviderFailure]):
        self.task = task
        self.failures = list(failures)
        tried = ", ".join(f.model for f in self.failures)
        super().__init__(
            f"All providers exhausted for task '{task}' (tried: {tried})",
            details={"task": task, "failures": [f.to_dict() for f in self.failures]},
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException in the same shape as application errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": "HTTP_ERROR", "message": exc.detail},
        headers=exc.headers,
    )
