"""FastAPI application configuration."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..envs.linkpay_env import Settings, get_settings
from ..infrastructure.database import close_database_client
from .dependencies import build_client_factory
from .routers import link_payments, quotes

logger = logging.getLogger(__name__)

settings = get_settings()


async def verify_wallet_addresses(settings: Settings) -> None:
    """Resolve both configured wallet addresses concurrently.

    Raises the first failure so the process does not serve traffic with a
    wallet it cannot reach.
    """
    async with build_client_factory(settings)() as client:
        results = await asyncio.gather(
            client.get_wallet_address(settings.sending_wallet_address_url),
            client.get_wallet_address(settings.receiving_wallet_address_url),
            return_exceptions=True,
        )
    for url, result in zip(
        (settings.sending_wallet_address_url, settings.receiving_wallet_address_url),
        results,
    ):
        if isinstance(result, BaseException):
            logger.error("Wallet address %s is not reachable: %s", url, result)
            raise result
        logger.info("Wallet address %s ready (%s)", result.id, result.asset_code)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if settings.verify_wallets_on_startup:
        await verify_wallet_addresses(settings)
    yield
    await close_database_client()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Open Payments pay-by-link and quote-then-pay API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Include routers
    app.include_router(link_payments.router)
    app.include_router(quotes.router, prefix="/api/v1")

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
        }

    return app


app = create_app()
