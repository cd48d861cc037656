from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from kidwallet_api.core.settings import settings
from kidwallet_api.services.events import InMemoryEventBus, LedgerEvent
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


async def _log_ledger_event(event: LedgerEvent) -> None:
    logger.debug("Ledger change published", kind=event.kind, subject_id=event.subject_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    event_bus = InMemoryEventBus()
    event_bus.subscribe(_log_ledger_event)
    app.state.event_bus = event_bus
    logger.info(
        "Wallet API started",
        environment=settings.environment,
        reconciliation_policy=settings.ledger_reconciliation_policy,
        wallet_timezone=settings.wallet_timezone,
    )
    try:
        yield
    finally:
        app.state.event_bus = None
        logger.info("Wallet API stopped")


def create_app() -> FastAPI:
    """Application factory for the KidWallet points API."""
    configure_logging(
        service_name="kidwallet-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="KidWallet API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="kidwallet-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
