"""
Rate limiting using slowapi.

Charge creation calls the gateway and creates a billable PIX charge, so it
is limited per client IP.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.config.logging import get_logger

logger = get_logger(__name__)

# Create limiter instance using client IP as key
limiter = Limiter(key_func=get_remote_address)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render rate limit errors in the API's {ok, message} envelope."""
    logger.warning(
        "Rate limit exceeded",
        path=request.url.path,
        client=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "ok": False,
            "message": "Limite de requisições excedido. Tente novamente mais tarde.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": "60"},
    )
