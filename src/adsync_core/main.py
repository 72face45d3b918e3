"""adsync FastAPI application entry point."""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
from fastapi import FastAPI
from redis.asyncio import Redis

from .api.routes import router as api_router
from .services import Services, build_services, close_services
from .sync.config import SyncConfig


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store, HTTP session and Redis client; run the reconcile worker."""
    if getattr(app.state, "services", None) is not None:
        yield
        return

    config = SyncConfig.from_env()
    redis = None
    if os.getenv("REDIS_URL"):
        redis = Redis.from_url(config.redis_url, decode_responses=False)
    else:
        logger.warning("REDIS_URL not set, manual refresh runs without locking")

    timeout = aiohttp.ClientTimeout(total=300, connect=30)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        services = build_services(config, session, redis)
        app.state.services = services
        await services.worker.start()
        try:
            yield
        finally:
            await services.worker.stop(drain=False)
            if redis is not None:
                await redis.aclose()
            close_services(services)
            app.state.services = None


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        services: Prebuilt services (tests); built from the environment when omitted
    """
    app = FastAPI(
        title="adsync API",
        version="0.1.0",
        description="Shopee seller ad-account reconciliation and campaign triage",
        lifespan=lifespan,
    )
    app.state.services = services

    app.include_router(api_router)

    return app


app = create_app()
