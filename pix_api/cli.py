"""
PIX billing CLI.

Operator commands for the store and for replaying reconciliation.
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from shared.config.logging import setup_logging
from shared.config.settings import Settings, get_settings
from shared.infrastructure.db import Store, StoreUnavailable
from pix_api.services.payments import (
    ConfigurationError,
    GatewayUnavailable,
    InvalidPaymentId,
    LedgerWriter,
    MercadoPagoClient,
    ReconciliationEngine,
)

app = typer.Typer(
    name="pix-billing",
    help="PIX billing operations CLI",
    add_completion=False,
)
console = Console()


def build_store(settings: Settings) -> Store:
    return Store.from_settings(settings)


def build_gateway(settings: Settings) -> MercadoPagoClient:
    return MercadoPagoClient.from_settings(settings)


# =============================================================================
# Database Commands
# =============================================================================


@app.command()
def db_init(
    database_url: Optional[str] = typer.Option(None, "--database-url", help="Override DATABASE_URL"),
):
    """Create the billing tables if they do not exist."""
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})

    if not settings.database_url:
        console.print("[red]✗ DATABASE_URL is not set[/red]")
        raise typer.Exit(1)

    store = build_store(settings)
    try:
        store.create_all()
    except StoreUnavailable as e:
        console.print(f"[red]✗ Could not create tables: {e}[/red]")
        raise typer.Exit(1)
    finally:
        store.close()

    console.print("[green]✓ Tables created/verified[/green]")


# =============================================================================
# Reconciliation Commands
# =============================================================================


@app.command()
def reconcile(
    payment_id: str = typer.Argument(..., help="Mercado Pago payment id"),
):
    """Re-run reconciliation for a payment, exactly as the webhook would."""
    settings = get_settings()
    setup_logging(settings)

    errors = settings.validate_required()
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/red]")
        raise typer.Exit(1)

    async def _reconcile():
        store = build_store(settings)
        gateway = build_gateway(settings)
        try:
            engine = ReconciliationEngine(gateway, LedgerWriter(store))
            return await engine.reconcile(payment_id)
        finally:
            await gateway.aclose()
            store.close()

    try:
        result = asyncio.run(_reconcile())
    except InvalidPaymentId as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)
    except (GatewayUnavailable, ConfigurationError) as e:
        console.print(f"[red]✗ Mercado Pago unavailable: {e}[/red]")
        raise typer.Exit(2)
    except StoreUnavailable as e:
        console.print(f"[red]✗ Store unavailable: {e}[/red]")
        raise typer.Exit(2)

    table = Table(title=f"Payment {result.gateway_payment_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("outcome", result.outcome.value)
    table.add_row("invoice", result.invoice_id or "-")
    table.add_row("gateway status", result.gateway_status or "-")
    if result.reason:
        table.add_row("reason", result.reason)
    console.print(table)


# =============================================================================
# Server Commands
# =============================================================================


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port (defaults to PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pix_api.main:app",
        host=host,
        port=port or settings.port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
