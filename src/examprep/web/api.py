"""FastAPI application for the exam prep backend.

Run with ``prep serve`` or ``uvicorn examprep.web.api:app``.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from examprep import __version__
from examprep.config.app_config import get_data_dir
from examprep.core.missions import load_mission_templates
from examprep.web.routes import (
    health_router,
    missions_router,
    personas_router,
    recommendations_router,
    sessions_router,
    study_goal_router,
    tests_router,
)

logger = structlog.get_logger(__name__)

ROUTERS = (
    health_router,
    personas_router,
    study_goal_router,
    tests_router,
    sessions_router,
    recommendations_router,
    missions_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Fail at startup rather than on the first mission request
    templates = load_mission_templates()
    logger.info("api_startup", data_dir=str(get_data_dir().resolve()), mission_templates=len(templates))
    yield
    logger.info("api_shutdown")


async def log_requests(request: Request, call_next):
    started = time.monotonic()
    response = await call_next(request)
    logger.debug(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    return response


def create_app(cors_origins: list[str] | None = None) -> FastAPI:
    """Build the API with every router mounted.

    Args:
        cors_origins: Allowed origins (any origin if None)
    """
    app = FastAPI(
        title="Exam Prep API",
        description="Adaptive testing, recommendations and missions for exam preparation",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    for router in ROUTERS:
        app.include_router(router)
    return app


app = create_app()
