from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from corre_wallet.core.settings import settings
from corre_wallet.db.session import async_session, init_models
from .api.routes import api_router
from .core.logging import configure_logging, request_context_middleware
from .observability.tracing import configure_tracing
from .workers import WalletExpirySweepWorker


APP_VERSION = "0.1.0"
SERVICE_NAME = "corre-wallet"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.environment == "development":
        await init_models()
        logger.info("Wallet tables ensured", database_url=settings.database_url.split("@")[-1])

    expiry_worker = WalletExpirySweepWorker(
        session_factory=_session_factory,
        interval_seconds=settings.expiry_sweep_interval_seconds,
        batch_size=settings.expiry_sweep_batch_size,
    )
    app.state.wallet_expiry_worker = expiry_worker

    expiry_enabled = settings.expiry_sweep_enabled
    if expiry_enabled:
        expiry_worker.start()
        logger.info(
            "Wallet expiry worker enabled",
            interval_seconds=expiry_worker.interval_seconds,
            batch_size=settings.expiry_sweep_batch_size,
        )
    else:
        logger.info(
            "Wallet expiry worker disabled",
            reason="expiry_sweep_enabled is false",
        )

    try:
        yield
    finally:
        if expiry_enabled and expiry_worker.is_running:
            await expiry_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the Corre wallet service."""
    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
        json_output=settings.log_json,
    )

    app = FastAPI(
        title="Corre Wallet API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.middleware("http")(request_context_middleware)

    configure_tracing(
        app,
        service_name=SERVICE_NAME,
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
