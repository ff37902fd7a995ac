"""
API Gateway -- FastAPI application factory.

Exposes the persona tools over HTTP. This is the entrypoint for uvicorn:

    uvicorn persona_council.api.gateway:create_app --factory --host 0.0.0.0 --port 8000

Or via the CLI:

    persona-council serve --port 8000

CORS is restricted to configured origins (default: localhost only). The
gateway performs no authentication; run it behind one if exposed.
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..bootstrap import build_service
from ..settings import Settings
from ..tools.service import PersonaToolService
from .routes import collaborations, health, personas, tools

logger = logging.getLogger(__name__)


def create_app(
    service: PersonaToolService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Application factory -- creates and configures the FastAPI app.

    Args:
        service: Pre-built tool service (built from settings if None).
        settings: Runtime settings (read from the environment if None).
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        svc: PersonaToolService = application.state.service
        if settings.auto_sync and svc.synchronizer is not None:
            svc.synchronizer.start_auto_sync()
        await svc.repository.warm_up()
        yield
        if svc.synchronizer is not None:
            svc.synchronizer.stop_auto_sync()
        logger.info("[Gateway] Shut down")

    application = FastAPI(
        title="Persona Council API",
        description="Persona selection and multi-persona collaboration",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    application.state.service = service or build_service(settings, warm_up=False)
    application.state.start_time = time.time()

    application.include_router(health.router, tags=["Health"])
    application.include_router(tools.router, prefix="/api/v1", tags=["Tools"])
    application.include_router(personas.router, prefix="/api/v1", tags=["Personas"])
    application.include_router(
        collaborations.router, prefix="/api/v1", tags=["Collaborations"]
    )

    logger.info("[Gateway] API gateway initialized")
    return application
