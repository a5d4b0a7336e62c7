import pytest
from unittest.mock import patch
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from core.config import Settings
from core.exceptions import (
    ConflictError,
    ImageStoreError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
    create_error_response,
)


class TestCorrelationMiddleware:
    """Test CorrelationMiddleware functionality."""

    @pytest.fixture
    def app_with_correlation_middleware(self):
        app = FastAPI()
        app.add_middleware(CorrelationMiddleware)

        @app.get("/test")
        async def test_endpoint(request: Request):
            return {"correlation_id": request.state.correlation_id}

        return app

    def test_correlation_id_generation(self, app_with_correlation_middleware):
        client = TestClient(app_with_correlation_middleware)
        response = client.get("/test")

        assert response.status_code == 200
        data = response.json()
        assert len(data["correlation_id"]) > 0
        assert response.headers["X-Correlation-ID"] == data["correlation_id"]

    def test_existing_correlation_id_preserved(self, app_with_correlation_middleware):
        client = TestClient(app_with_correlation_middleware)

        response = client.get("/test", headers={"X-Correlation-ID": "existing-123"})

        assert response.json()["correlation_id"] == "existing-123"
        assert response.headers["X-Correlation-ID"] == "existing-123"

    def test_request_id_header_is_accepted(self, app_with_correlation_middleware):
        client = TestClient(app_with_correlation_middleware)

        response = client.get("/test", headers={"X-Request-ID": "req-456"})

        assert response.json()["correlation_id"] == "req-456"

    def test_multiple_requests_different_ids(self, app_with_correlation_middleware):
        client = TestClient(app_with_correlation_middleware)

        first = client.get("/test").json()["correlation_id"]
        second = client.get("/test").json()["correlation_id"]

        assert first != second


class TestErrorHandlingMiddleware:
    """Test ErrorHandlingMiddleware functionality."""

    @pytest.fixture
    def app_with_error_middleware(self):
        app = FastAPI()
        app.add_middleware(ErrorHandlingMiddleware)
        app.add_middleware(CorrelationMiddleware)

        @app.get("/test/validation-error")
        async def validation_error_endpoint():
            raise ValidationError("text", "text is required")

        @app.get("/test/not-found")
        async def not_found_endpoint():
            raise NotFoundError("Photo", "p1")

        @app.get("/test/forbidden")
        async def forbidden_endpoint():
            raise PermissionDeniedError("Not yours", resource="comment")

        @app.get("/test/conflict")
        async def conflict_endpoint():
            raise ConflictError("Already following")

        @app.get("/test/image-store")
        async def image_store_endpoint():
            raise ImageStoreError("timeout")

        @app.get("/test/generic-error")
        async def generic_error_endpoint():
            raise Exception("Something went wrong")

        @app.get("/test/success")
        async def success_endpoint():
            return {"message": "success"}

        return app

    @pytest.mark.parametrize(
        "path,status_code,code",
        [
            ("/test/validation-error", 400, "VALIDATION_ERROR"),
            ("/test/not-found", 404, "NOT_FOUND"),
            ("/test/forbidden", 403, "PERMISSION_DENIED"),
            ("/test/conflict", 400, "CONFLICT"),
            ("/test/image-store", 502, "IMAGE_STORE_ERROR"),
        ],
    )
    def test_application_errors(self, app_with_error_middleware, path, status_code, code):
        client = TestClient(app_with_error_middleware)
        response = client.get(path)

        assert response.status_code == status_code
        error = response.json()["error"]
        assert error["code"] == code
        assert error["correlation_id"] == response.headers["X-Correlation-ID"]

    def test_validation_error_envelope(self, app_with_error_middleware):
        client = TestClient(app_with_error_middleware)
        response = client.get("/test/validation-error")

        assert response.json()["error"] == {
            "type": "ValidationError",
            "code": "VALIDATION_ERROR",
            "message": "text is required",
            "correlation_id": response.headers["X-Correlation-ID"],
            "details": {"field": "text", "reason": "text is required"},
        }

    def test_generic_error_includes_detail_outside_production(
        self, app_with_error_middleware
    ):
        client = TestClient(app_with_error_middleware)
        response = client.get("/test/generic-error")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert error["message"] == "An unexpected error occurred"
        assert error["details"]["detail"] == "Something went wrong"

    def test_generic_error_hides_detail_in_production(self, app_with_error_middleware):
        client = TestClient(app_with_error_middleware)
        with patch(
            "core.middleware.get_settings",
            return_value=Settings(environment="production"),
        ):
            response = client.get("/test/generic-error")

        assert response.status_code == 500
        assert "details" not in response.json()["error"]

    def test_successful_request_passthrough(self, app_with_error_middleware):
        client = TestClient(app_with_error_middleware)
        response = client.get("/test/success")

        assert response.status_code == 200
        assert response.json() == {"message": "success"}


class TestPerformanceMiddleware:
    """Test PerformanceMiddleware functionality."""

    @pytest.fixture
    def app_with_performance_middleware(self):
        app = FastAPI()
        app.add_middleware(PerformanceMiddleware)

        @app.get("/test")
        async def test_endpoint():
            return {"message": "ok"}

        return app

    def test_process_time_header(self, app_with_performance_middleware):
        client = TestClient(app_with_performance_middleware)
        response = client.get("/test")

        assert response.status_code == 200
        assert float(response.headers["X-Process-Time"]) >= 0

    def test_slow_request_is_flagged(self, app_with_performance_middleware):
        client = TestClient(app_with_performance_middleware)
        with patch("core.middleware.SLOW_REQUEST_THRESHOLD_SECONDS", -1), patch(
            "core.middleware.logger"
        ) as mock_logger:
            client.get("/test")

        mock_logger.warning.assert_called_once()
        assert "Slow request" in mock_logger.warning.call_args[0][0]


class TestCreateErrorResponse:
    def test_minimal_envelope(self):
        response = create_error_response("NotFoundError", "NOT_FOUND", "Photo not found", 404)

        assert response.status_code == 404
        assert response.body == (
            b'{"error":{"type":"NotFoundError","code":"NOT_FOUND","message":"Photo not found"}}'
        )
