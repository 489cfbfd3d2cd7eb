"""FastAPI application setup."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from .routes import (
    create_observability_router,
    create_runs_router,
    create_stream_router,
)


def create_fastapi_app(application: Application) -> FastAPI:
    """Create and configure the FastAPI application around an owned Application."""

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        """Manage application lifespan."""
        await application.start()
        yield
        await application.stop()

    fastapi_app = FastAPI(
        title="Research Stream API",
        description="Live event stream of research-agent runs",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:5174")
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    fastapi_app.include_router(create_runs_router(application))
    fastapi_app.include_router(create_stream_router(application))
    fastapi_app.include_router(create_observability_router(application))

    return fastapi_app
