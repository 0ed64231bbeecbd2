"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from switchboard.api.middleware import RequestIdMiddleware
from switchboard.api.routes import api_router
from switchboard.infrastructure.background_tasks import BackgroundTaskRunner
from switchboard.infrastructure.event_bus import EventBus
from switchboard.infrastructure.evolution_client import EvolutionClient
from switchboard.infrastructure.facebook_client import FacebookGraphClient
from switchboard.logging_config import setup_logging
from switchboard.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info(f"Switchboard starting ({settings.environment})")
    yield
    # Shutdown
    await app.state.task_runner.shutdown()
    logger.info("Switchboard stopped")


def create_app() -> FastAPI:
    """Build the application with its own event bus and task runner.

    Components are attached to ``app.state`` here rather than in the
    lifespan so an app driven without lifespan events is still usable.
    """
    app = FastAPI(
        title="Switchboard API",
        description="Real-time multi-channel customer messaging",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.event_bus = EventBus()
    app.state.task_runner = BackgroundTaskRunner()
    app.state.evolution_client = EvolutionClient()
    app.state.graph_client = FacebookGraphClient()

    # A wildcard origin is reflected so credentialed requests still work
    if "*" in settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=".*",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
