"""
Health check and configuration check endpoints.
"""

import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from shared.config.settings import Settings
from shared.infrastructure.db import Store, StoreUnavailable
from pix_api.dependencies import get_app_settings, get_gateway, get_store
from pix_api.services.payments import CircuitState, MercadoPagoClient

router = APIRouter(tags=["health"])

SERVICE_NAME = "pix-api"


@router.get("/health")
def health_check(settings: Settings = Depends(get_app_settings)):
    """Basic health check endpoint."""
    return {
        "ok": True,
        "service": SERVICE_NAME,
        "status": "healthy",
        "environment": settings.environment,
    }


@router.get("/health/detailed")
async def detailed_health_check(
    settings: Settings = Depends(get_app_settings),
    store: Store = Depends(get_store),
    gateway: MercadoPagoClient = Depends(get_gateway),
):
    """
    Detailed health check that verifies connectivity to dependencies.
    Returns the store status and the Mercado Pago circuit breaker stats.
    """
    checks = {
        "service": SERVICE_NAME,
        "environment": settings.environment,
        "dependencies": {},
    }
    all_healthy = True

    try:
        await asyncio.to_thread(store.ping)
        checks["dependencies"]["database"] = {"status": "healthy"}
    except StoreUnavailable as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    breaker = gateway.breaker
    checks["circuit_breakers"] = {breaker.config.name: breaker.snapshot()}
    if breaker.state == CircuitState.OPEN:
        all_healthy = False

    checks["ok"] = all_healthy
    checks["status"] = "healthy" if all_healthy else "degraded"

    # Return 503 if any dependency is down
    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)

    return checks


@router.get("/env-check")
def env_check(settings: Settings = Depends(get_app_settings)):
    """Which configuration values are present. Never returns a secret."""
    return {
        "mpToken": bool(settings.mercado_pago_access_token.strip()),
        "database": bool(settings.database_url.strip()),
        "webhookUrl": settings.mp_webhook_url or None,
    }
