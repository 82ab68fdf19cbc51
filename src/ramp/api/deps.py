"""FastAPI dependency injection for the Ramp API.

Provides access to shared resources via app.state.
"""

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from ramp.config import Config
    from ramp.service import TopicIntentService


def get_config(request: Request) -> "Config":
    """Get config from app state."""
    return request.app.state.config


def get_db(request: Request) -> "Engine":
    """Get database engine from app state."""
    return request.app.state.db


def get_service(request: Request) -> "TopicIntentService":
    """Get the topic intent service from app state."""
    return request.app.state.service
