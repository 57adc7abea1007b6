"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bullion_rates.api.deps import AppState, admin_token_middleware
from bullion_rates.api.routes import router
from bullion_rates.core.config import RatesConfig, load_config
from bullion_rates.core.exceptions import (
    AllSourcesFailed,
    BullionRatesError,
    ConfigError,
    PersistenceUnavailable,
    StorageError,
)
from bullion_rates.service import RateService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    service = await RateService.open(config)
    await service.seed()
    if config.refresh.background_loop:
        service.scheduler.start()

    app.state.app_state = AppState(config=config, service=service)

    yield

    await service.close()


def create_app(config: RatesConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import bullion_rates

    app = FastAPI(
        title="Bullion Rates API",
        description="Live silver base rate and derived catalog prices",
        version=bullion_rates.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(admin_token_middleware)

    app.include_router(router, prefix="/api")

    @app.exception_handler(BullionRatesError)
    async def rates_exception_handler(request: Request, exc: BullionRatesError):
        status_map = {
            ConfigError: 400,
            AllSourcesFailed: 502,
            PersistenceUnavailable: 503,
            StorageError: 500,
        }
        status = next(
            (code for cls, code in status_map.items() if isinstance(exc, cls)), 500
        )
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
