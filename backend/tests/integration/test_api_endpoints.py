"""
Integration tests for the service endpoints and the uniform error body.

Tests the full request/response cycle.
"""

from fastapi.testclient import TestClient


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, client: TestClient):
        """Root endpoint should return welcome message."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert "message" in data

    def test_health_endpoint(self, client: TestClient):
        """Health endpoint should return healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["providers"] == {"stripe": True, "paypal": True}


class TestErrorShape:
    """Every failure uses {"error": {"message": ...}}."""

    def test_unknown_route(self, client: TestClient):
        response = client.get("/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"error": {"message": "Not Found"}}

    def test_wrong_method(self, client: TestClient):
        response = client.get("/subscription/cancel")
        assert response.status_code == 405
        assert "message" in response.json()["error"]

    def test_malformed_body_is_400(self, api_client: TestClient):
        response = api_client.post("/auth/login", json={"email": "sam@uni.ac.uk"})
        assert response.status_code == 400
        assert response.json()["error"]["message"].startswith("password:")

    def test_unhandled_errors_hide_internals(self, app, store):
        from app.api.dependencies import get_user_repository

        class ExplodingStore:
            async def get_by_email(self, email):
                raise RuntimeError("connection string with password=hunter2")

        app.dependency_overrides[get_user_repository] = lambda: ExplodingStore()
        try:
            client = TestClient(app, raise_server_exceptions=False)
            response = client.post("/auth/login", json={"email": "sam@uni.ac.uk", "password": "whatever1"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"error": {"message": "Internal server error"}}
