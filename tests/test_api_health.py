"""Tests for the FastAPI scaffold and health endpoint."""

import pytest
from fastapi.testclient import TestClient

from ramp import __version__
from ramp.api import create_app
from ramp.service import TopicIntentService


@pytest.fixture
def app(test_config, engine):
    """Create a test FastAPI application."""
    application = create_app(test_config)
    application.state.config = test_config
    application.state.db = engine
    application.state.service = TopicIntentService(engine, test_config)
    return application


@pytest.fixture
def client(app) -> TestClient:
    """Create a test client for the API."""
    return TestClient(app)


class TestAppInitialization:
    """Tests for: FastAPI app initializes correctly."""

    def test_app_metadata(self, app) -> None:
        assert app.title == "Ramp Topic Intent API"
        assert app.version == __version__
        assert app.docs_url == "/docs"


class TestHealth:
    """Tests for GET /health."""

    def test_health_ok(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database"] == "ok"
        assert data["version"] == __version__

    def test_health_degraded(self, app, client: TestClient) -> None:
        class BrokenEngine:
            def connect(self):
                raise RuntimeError("db down")

        app.state.db = BrokenEngine()
        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["database"] == "error"

    def test_cors_headers(self, client: TestClient) -> None:
        response = client.options(
            "/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.headers.get("access-control-allow-origin") == "http://localhost:3000"
