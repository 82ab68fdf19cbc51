"""FastAPI application for the Ramp topic intent API.

Accepts classified messages and exposes each user's active topics and the
strategy directive for their warmest one.
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ramp import __version__
from ramp.api.health import router as health_router
from ramp.api.topics import router as topics_router

if TYPE_CHECKING:
    from ramp.config import Config

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    log.info("api_starting")
    yield
    log.info("api_stopping")


def create_app(config: "Config") -> FastAPI:
    """Create and configure the FastAPI application.

    The caller sets ``app.state.config``, ``app.state.db`` and
    ``app.state.service`` before serving requests.

    Args:
        config: Application configuration.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Ramp Topic Intent API",
        description="""
## About

Ramp tracks how interested a user is in each topic they talk about and
turns that into a directive for the assistant: observe, ask, offer, or act.

- **Messages**: Feed a classified message to update the matching topic
- **Topics**: Active topics per user, warmest first
- **Strategy**: Directive for the user's warmest topic

## Authentication

Currently no authentication (local development only).
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        log.info(
            "request_start",
            method=request.method,
            path=request.url.path,
        )
        response = await call_next(request)
        log.info(
            "request_complete",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
        )
        return response

    app.include_router(health_router)
    app.include_router(topics_router)

    return app
