"""Fineract seeding service — FastAPI application entry point.

Creates the authenticated Fineract client on startup and registers API routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fineract_seed.api import health, imports
from fineract_seed.core.auth import build_auth_provider
from fineract_seed.core.config import settings
from fineract_seed.core.fineract_client import FineractClient

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the Fineract client on startup, close it on shutdown."""
    logger.info("Starting Fineract seed backend...")
    app.state.client = FineractClient.from_settings(settings, auth=build_auth_provider(settings))
    app.state.latest_run = None
    logger.info(f"Fineract client ready for {settings.fineract_url} (tenant '{settings.fineract_tenant}')")
    yield

    logger.info("Shutting down Fineract seed backend...")
    app.state.client.close()
    app.state.client = None


app = FastAPI(
    title="Fineract Seed",
    version="0.1.0",
    description="Seeds a Fineract instance from spreadsheet templates.",
    lifespan=lifespan,
)

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(imports.router, prefix="/api", tags=["imports"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.backend_host, port=settings.backend_port)
