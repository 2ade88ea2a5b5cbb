"""
Utilities module: Exceptions and schemas.
"""

from shared.utils.exceptions import (
    AppException,
    ValidationError,
    GatewayRejectedError,
    NotConfiguredError,
    ExternalServiceError,
    app_exception_handler,
    request_validation_exception_handler,
)

__all__ = [
    "AppException",
    "ValidationError",
    "GatewayRejectedError",
    "NotConfiguredError",
    "ExternalServiceError",
    "app_exception_handler",
    "request_validation_exception_handler",
]
