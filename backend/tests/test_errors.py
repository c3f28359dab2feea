"""
Tests for the Polychat error handling module.
"""

import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from errors import (
    ApiError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundOrForbiddenError,
    PersistenceError,
    PolychatError,
    ProviderEmptyResponse,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimitExceeded,
    ValidationError,
    error_response,
    log_error,
    register_exception_handlers,
    status_for,
    success_response,
)


class TestErrorCodes:
    """Test error code enum."""

    def test_error_codes_are_strings(self):
        """Error codes should be string values."""
        assert ErrorCode.RATE_LIMIT_EXCEEDED.value == "RATE_LIMIT_EXCEEDED"
        assert ErrorCode.PROVIDER_TIMEOUT.value == "PROVIDER_TIMEOUT"

    def test_error_codes_have_categories(self):
        """Error codes should follow category naming convention."""
        validation_codes = [c for c in ErrorCode if c.value.startswith("VALIDATION_")]
        assert len(validation_codes) >= 3

        provider_codes = [c for c in ErrorCode if c.value.startswith("PROVIDER_")]
        assert len(provider_codes) == 3


class TestPolychatError:
    """Test base PolychatError exception."""

    def test_basic_creation(self):
        """Create basic error with message."""
        err = PolychatError("Test error")
        assert err.message == "Test error"
        assert err.details is None
        assert err.code == ErrorCode.INTERNAL_UNEXPECTED
        assert err.recoverable is False
        assert err.status_code == 500

    def test_with_context(self):
        """Extra keyword arguments land in context."""
        err = PolychatError("Test error", foo="bar", count=42)
        assert err.context == {"foo": "bar", "count": 42}

    def test_str_representation(self):
        """String details are appended to the message."""
        assert str(PolychatError("Test error", details="More info")) == "Test error - More info"
        assert str(PolychatError("Test error")) == "Test error"

    def test_code_override(self):
        err = ValidationError("Busy", code=ErrorCode.VALIDATION_BUSY)
        assert err.code == ErrorCode.VALIDATION_BUSY
        assert err.status_code == 400

    def test_to_dict(self):
        err = PolychatError("Test error", details="More info", key="value")
        assert err.to_dict() == {
            "code": "INTERNAL_UNEXPECTED",
            "message": "Test error",
            "details": "More info",
            "recoverable": False,
            "context": {"key": "value"},
        }


class TestErrorStatuses:
    """Each error kind maps onto one HTTP status."""

    def test_validation_is_400(self):
        err = ValidationError("Bad input", parameter="message", expected="text", received="")
        assert err.status_code == 400
        assert err.context == {"parameter": "message", "expected": "text"}

    def test_not_found_is_404_with_resource_code(self):
        err = NotFoundOrForbiddenError("Missing", resource_type="conversation", resource_id="c1")
        assert err.status_code == 404
        assert err.code == ErrorCode.NOT_FOUND_CONVERSATION
        assert err.context == {"resource_type": "conversation", "resource_id": "c1"}

    def test_forbidden_is_403(self):
        err = ForbiddenError("Not yours")
        assert err.status_code == 403
        assert err.code == ErrorCode.FORBIDDEN_NOT_OWNER

    def test_conflict_is_409(self):
        assert ConflictError("Duplicate").status_code == 409

    def test_rate_limit_is_429(self):
        err = RateLimitExceeded(limit=20, window_seconds=60)
        assert err.status_code == 429
        assert err.context == {"limit": 20, "window_seconds": 60}
        assert "Too many messages" in err.message

    def test_provider_errors_use_generic_messages(self):
        assert ProviderUnavailable().status_code == 502
        assert ProviderTimeout().status_code == 504
        assert ProviderEmptyResponse(model="m").context == {"model": "m"}
        assert "unavailable" in ProviderUnavailable().message

    def test_persistence_is_500(self):
        err = PersistenceError("Failed to insert user message", operation="insert user message")
        assert err.status_code == 500
        assert err.context == {"operation": "insert user message"}

    def test_api_error_keeps_status(self):
        err = ApiError("Conversation not found", status=404)
        assert err.status == 404
        assert err.context == {"status": 404}

    def test_status_for_unknown_exception(self):
        assert status_for(RuntimeError("boom")) == 500
        assert status_for(ConflictError("dup")) == 409


class TestErrorResponse:
    """Test error_response builder."""

    def test_polychat_error_response(self):
        response = error_response(ValidationError("Message cannot be empty", details={"field": "message"}))
        assert response == {
            "error": True,
            "message": "Message cannot be empty",
            "details": {"field": "message"},
            "code": "VALIDATION_MISSING_PARAM",
        }

    def test_generic_exception_hides_text(self):
        response = error_response(RuntimeError("password=hunter2"))
        assert response["error"] is True
        assert "hunter2" not in response["message"]
        assert response["code"] == "INTERNAL_UNEXPECTED"

    def test_without_code(self):
        response = error_response(ConflictError("dup"), include_code=False)
        assert "code" not in response
        assert "details" not in response


class TestSuccessResponse:
    """Test success_response builder."""

    def test_basic_success(self):
        assert success_response() == {"success": True}

    def test_with_kwargs(self):
        assert success_response(deleted=1) == {"success": True, "deleted": 1}

    def test_with_data_dict(self):
        assert success_response({"id": "c1"}) == {"success": True, "id": "c1"}


class TestLogError:
    """Test log_error formatting."""

    def test_polychat_error_logged_with_code(self, caplog):
        logger = logging.getLogger("test_log_error")
        with caplog.at_level(logging.ERROR):
            log_error(logger, PersistenceError("Failed to insert"), context="chat", include_traceback=False)
        assert "[chat] PERSISTENCE_FAILED: Failed to insert" in caplog.text


class _Body(BaseModel):
    message: str


def _app_with_handlers() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("That model is already in your list.")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    @app.post("/echo")
    async def echo(body: _Body):
        return {"message": body.message}

    return app


class TestExceptionHandlers:
    """Handlers translate exceptions into the standard body."""

    def test_polychat_error_status_and_body(self):
        client = TestClient(_app_with_handlers())
        response = client.get("/conflict")
        assert response.status_code == 409
        assert response.json()["error"] is True
        assert response.json()["message"] == "That model is already in your list."

    def test_unexpected_error_is_generic_500(self):
        client = TestClient(_app_with_handlers(), raise_server_exceptions=False)
        response = client.get("/boom")
        assert response.status_code == 500
        assert "secret" not in response.json()["message"]

    def test_request_validation_is_400_with_field_errors(self):
        client = TestClient(_app_with_handlers())
        response = client.post("/echo", json={})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Invalid payload"
        assert "message" in body["details"]["fieldErrors"]
        assert body["details"]["formErrors"] == []
