"""
FastAPI application entry point for the itinerary planner backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.config import get_settings
from backend.dependencies import get_page_registry
from backend.routes import router


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Release every open live subscription on shutdown.
    get_page_registry().close()


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(
        title="Travel Itinerary Planner", version="0.1.0", lifespan=lifespan
    )
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
