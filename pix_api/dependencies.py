"""
FastAPI dependencies.

Process-scoped components are built in the application lifespan and kept on
``app.state``; handlers receive them through these functions.
"""

from fastapi import Request

from shared.config.settings import Settings
from shared.infrastructure.db import Store
from pix_api.services.payments import MercadoPagoClient, ReconciliationEngine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_gateway(request: Request) -> MercadoPagoClient:
    return request.app.state.gateway


def get_reconciliation_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.reconciliation_engine
