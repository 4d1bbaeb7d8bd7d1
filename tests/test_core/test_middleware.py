import pytest
from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from core.exceptions import ConflictError, NotFoundError, RateLimitError
from core.middleware import (
    CorrelationMiddleware,
    PerformanceMiddleware,
    RequestValidationMiddleware,
    SecurityHeadersMiddleware,
    register_exception_handlers,
)


@pytest.fixture
def app():
    app = FastAPI()

    @app.get("/ok")
    async def ok():
        return {"status": "ok"}

    @app.post("/echo")
    async def echo(payload: dict):
        return payload

    @app.get("/missing")
    async def missing():
        raise NotFoundError("album", "mock-lastfm-99")

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("follow", "Already following this user")

    @app.get("/limited")
    async def limited():
        raise RateLimitError("127.0.0.1", retry_after=4.6)

    @app.get("/crash")
    async def crash():
        raise RuntimeError("database exploded")

    @app.get("/search")
    async def search(limit: int = Query(10, ge=1, le=50)):
        return {"limit": limit}

    register_exception_handlers(app)
    return app


class TestCorrelationMiddleware:
    """Test correlation ID propagation."""

    @pytest.fixture
    def client(self, app):
        app.add_middleware(CorrelationMiddleware)
        return TestClient(app)

    def test_generates_correlation_id(self, client):
        response = client.get("/ok")

        assert response.status_code == 200
        assert len(response.headers["X-Correlation-ID"]) == 36

    def test_echoes_client_correlation_id(self, client):
        response = client.get("/ok", headers={"X-Correlation-ID": "corr-abc"})

        assert response.headers["X-Correlation-ID"] == "corr-abc"

    def test_request_id_header_is_accepted(self, client):
        response = client.get("/ok", headers={"X-Request-ID": "req-1"})

        assert response.headers["X-Correlation-ID"] == "req-1"

    def test_error_envelope_carries_correlation_id(self, client):
        response = client.get("/missing", headers={"X-Correlation-ID": "corr-404"})

        assert response.json()["error"]["correlation_id"] == "corr-404"


class TestPerformanceMiddleware:
    def test_adds_process_time_and_records_request(self, app):
        from core.metrics import init_metrics_collector

        collector = init_metrics_collector()
        app.add_middleware(PerformanceMiddleware)
        client = TestClient(app)

        response = client.get("/ok")

        assert float(response.headers["X-Process-Time"]) >= 0
        assert collector.get_stats()["requests"]["endpoints"] == {"GET /ok": 1}


class TestSecurityHeadersMiddleware:
    def test_headers_on_success_and_error(self, app):
        app.add_middleware(SecurityHeadersMiddleware)
        client = TestClient(app)

        for path in ("/ok", "/missing"):
            response = client.get(path)
            assert response.headers["X-Content-Type-Options"] == "nosniff"
            assert response.headers["X-Frame-Options"] == "DENY"
            assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"


class TestRequestValidationMiddleware:
    @pytest.fixture
    def client(self, app):
        app.add_middleware(RequestValidationMiddleware, max_request_size=64)
        return TestClient(app)

    def test_json_body_is_accepted(self, client):
        response = client.post("/echo", json={"rating": 5})

        assert response.status_code == 200
        assert response.json() == {"rating": 5}

    def test_oversized_body(self, client):
        response = client.post("/echo", json={"content": "x" * 100})

        assert response.status_code == 413
        assert response.json()["error"]["code"] == "REQUEST_TOO_LARGE"

    def test_unsupported_content_type(self, client):
        response = client.post("/echo", content=b"rating=5", headers={"Content-Type": "text/plain"})

        assert response.status_code == 415
        assert response.json()["error"]["code"] == "INVALID_CONTENT_TYPE"

    def test_invalid_content_length(self, client):
        response = client.get("/ok", headers={"Content-Length": "lots"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CONTENT_LENGTH"


class TestExceptionHandlers:
    @pytest.fixture
    def client(self, app):
        return TestClient(app, raise_server_exceptions=False)

    def test_not_found_envelope(self, client):
        response = client.get("/missing")
        body = response.json()

        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"]["type"] == "NotFoundError"
        assert body["error"]["code"] == "NOT_FOUND"
        assert body["error"]["details"] == {"resource": "album", "identifier": "mock-lastfm-99"}
        assert body["path"] == "/missing"
        assert "timestamp" in body

    def test_conflict(self, client):
        assert client.get("/conflict").status_code == 409

    def test_rate_limit_sets_retry_after(self, client):
        response = client.get("/limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "5"

    def test_request_validation_is_400(self, client):
        response = client.get("/search", params={"limit": 500})
        error = response.json()["error"]

        assert response.status_code == 400
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"].startswith("Validation failed: query.limit")
        assert error["details"]["errors"][0]["field"] == "query.limit"

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "HTTP_404"

    def test_unexpected_error_hides_details(self, client):
        response = client.get("/crash")
        error = response.json()["error"]

        assert response.status_code == 500
        assert error["code"] == "INTERNAL_ERROR"
        assert "exploded" not in error["message"]
