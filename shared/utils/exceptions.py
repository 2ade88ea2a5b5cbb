"""
Centralized HTTP exceptions for consistent error handling.

All of them are rendered by the application as
``{"ok": false, "message": ...}`` (plus ``causes`` when the gateway sent any).

Usage:
    from shared.utils.exceptions import ValidationError, ExternalServiceError

    raise ValidationError("payerEmail inválido")
    raise ExternalServiceError("Mercado Pago", is_unavailable=True, retry_after=30)
"""

from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        causes: list[str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        self.causes = causes or []
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_content(self) -> dict[str, Any]:
        content: dict[str, Any] = {"ok": False, "message": self.detail}
        if self.causes:
            content["causes"] = self.causes
        return content


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Caller input is malformed (400).

    Usage:
        raise ValidationError("valor deve ser positivo", field="amount")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class GatewayRejectedError(AppException):
    """The payment gateway declined the request (400)."""

    def __init__(self, message: str, causes: list[str] | None = None, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Erro Mercado Pago: {message}",
            log_level="warning",
            causes=causes,
            **log_context,
        )


# =============================================================================
# 5xx Errors
# =============================================================================


class NotConfiguredError(AppException):
    """A required integration has no credentials (503)."""

    def __init__(self, service: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{service} não está configurado",
            log_level="error",
            service=service,
            **log_context,
        )


class ExternalServiceError(AppException):
    """External service error (502, or 503 when temporarily unavailable)."""

    def __init__(
        self,
        service: str,
        is_unavailable: bool = False,
        retry_after: int | None = None,
        **log_context: Any,
    ):
        if is_unavailable:
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            detail = f"Serviço {service} temporariamente indisponível"
        else:
            status_code = status.HTTP_502_BAD_GATEWAY
            detail = f"Erro ao comunicar com {service}"

        headers = None
        if retry_after:
            headers = {"Retry-After": str(retry_after)}

        super().__init__(
            status_code=status_code,
            detail=detail,
            log_level="error",
            headers=headers,
            service=service,
            **log_context,
        )


# =============================================================================
# Exception handlers
# =============================================================================


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render AppException in the {ok, message} envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_content(),
        headers=exc.headers,
    )


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request body/path validation failures are 400s with a readable message."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))

    message = "; ".join(problems) or "Requisição inválida"
    logger.warning("Request validation failed", path=request.url.path, problems=problems)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"ok": False, "message": message})
