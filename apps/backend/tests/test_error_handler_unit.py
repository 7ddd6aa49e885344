"""Focused unit tests for global exception handling and structured logging.

The handler tests exercise the public contract through a small FastAPI app
with the installed exception handler and ExceptionNormalizationMiddleware.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from core.error_handler import (
    ExceptionNormalizationMiddleware,
    StructuredLogger,
    _build_error_response,
    _classify,
    global_exception_handler,
)
from core.exceptions import ArtifactsNotFoundError, DomainError, SessionNotFoundError
from core.middleware import CorrelationIdMiddleware


class Message(BaseModel):
    content: str = Field(min_length=1)


@pytest.fixture
def build_test_app():
    patchers = []

    def _build(env: str) -> TestClient:
        app = FastAPI()
        app.add_middleware(ExceptionNormalizationMiddleware)
        app.add_middleware(CorrelationIdMiddleware)
        app.add_exception_handler(Exception, global_exception_handler)
        app.add_exception_handler(HTTPException, global_exception_handler)
        app.add_exception_handler(RequestValidationError, global_exception_handler)

        @app.post("/messages")
        async def post_message(message: Message):  # pragma: no cover - via client
            return {"ok": True}

        @app.get("/session-missing")
        async def session_missing():
            raise SessionNotFoundError("No messages found for session abc")

        @app.get("/artifacts-missing")
        async def artifacts_missing():
            raise ArtifactsNotFoundError("No code artifacts cached")

        @app.get("/domain-other")
        async def domain_other():
            raise DomainError("Step already archived")

        @app.get("/boom")
        async def boom():
            raise RuntimeError("Exploded with secret=should_not_leak")

        @app.get("/teapot")
        async def teapot():
            raise HTTPException(status_code=418, detail="No coffee here")

        patcher = patch("core.error_handler.get_settings")
        patcher.start().return_value.ENVIRONMENT = env
        patchers.append(patcher)
        return TestClient(app)

    yield _build

    for patcher in patchers:
        patcher.stop()


def test_validation_error_production(build_test_app):
    client = build_test_app("production")
    resp = client.post("/messages", json={"content": ""})

    assert resp.status_code == 422
    data = resp.json()
    assert data["error"]["type"] == "validation_error"
    assert "validation_errors" not in data["error"]


def test_validation_error_development(build_test_app):
    client = build_test_app("development")
    resp = client.post("/messages", json={"content": ""})

    assert resp.status_code == 422
    assert "validation_errors" in resp.json()["error"]


@pytest.mark.parametrize(
    ("path", "message"),
    [
        ("/session-missing", "The requested chat session was not found"),
        ("/artifacts-missing", "No generated code artifacts are available"),
    ],
)
def test_not_found_domain_errors_map_to_404(build_test_app, path, message):
    client = build_test_app("production")
    resp = client.get(path)

    assert resp.status_code == 404
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == message
    assert body["error"]["type"] == "domain_error"
    assert "details" not in body["error"]


def test_domain_error_details_in_development(build_test_app):
    client = build_test_app("development")
    resp = client.get("/domain-other")

    assert resp.status_code == 400
    assert resp.json()["error"]["details"] == {"detail": "Step already archived"}


def test_generic_exception_production(build_test_app):
    client = build_test_app("production")
    resp = client.get("/boom")

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" not in body["error"]
    assert "secret=should_not_leak" not in str(body)


def test_generic_exception_development(build_test_app):
    client = build_test_app("development")
    resp = client.get("/boom")

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["type"] == "internal_server_error"
    assert "traceback" in body["error"]
    assert body["error"]["exception_type"] == "RuntimeError"


def test_http_exception_keeps_status(build_test_app):
    client = build_test_app("production")
    resp = client.get("/teapot", headers={"X-Correlation-ID": "cid-418"})

    assert resp.status_code == 418
    body = resp.json()
    assert body["error"] == {"correlation_id": "cid-418", "type": "http_error"}


@pytest.mark.parametrize(
    ("exc", "status_code", "error_type"),
    [
        (HTTPException(status_code=405), 405, "http_error"),
        (IntegrityError("INSERT", {}, Exception("duplicate")), 409, "integrity_error"),
        (SessionNotFoundError("x"), 404, "domain_error"),
        (ArtifactsNotFoundError("x"), 404, "domain_error"),
        (DomainError("x"), 400, "domain_error"),
        (KeyError("x"), 500, "internal_server_error"),
    ],
)
def test_exception_classification(exc, status_code, error_type):
    kind = _classify(exc)

    assert (kind.status_code, kind.error_type) == (status_code, error_type)


@pytest.mark.parametrize(
    ("environment", "optional_present"),
    [("production", False), ("development", True)],
)
def test_build_error_response_field_filtering(environment, optional_present):
    resp = _build_error_response(
        correlation_id="cid",
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        details={"debug": True},
        traceback_str="trace",
        exception_type="ValueError",
        validation_errors={"x": 1},
        status_code=500,
    )
    body = json.loads(resp.body)

    assert resp.status_code == 500
    assert body["error"]["correlation_id"] == "cid"
    for field in ("details", "traceback", "exception_type", "validation_errors"):
        assert (field in body["error"]) is optional_present


class TestStructuredLoggerRedaction:
    def test_sensitive_keys_are_redacted(self):
        logger = StructuredLogger("tests")

        sanitized = logger._sanitize_data(
            {
                "anthropic_api_key": "placeholder",  # pragma: allowlist secret
                "session_id": "2b1f",
                "model": "gpt-oss",
                "nested": {"authorization": "Bearer x", "history_turns": 4},
                "items": [{"email": "me@example.com"}, "plain"],
            }
        )

        assert sanitized["anthropic_api_key"] == "[REDACTED]"
        assert sanitized["session_id"] == "2b1f"
        assert sanitized["model"] == "gpt-oss"
        assert sanitized["nested"] == {
            "authorization": "[REDACTED]",
            "history_turns": 4,
        }
        assert sanitized["items"] == [{"email": "[REDACTED]"}, "plain"]

    def test_header_like_entries_are_redacted(self):
        logger = StructuredLogger("tests")

        redacted = logger._redact_header_like(
            {"name": "X-Api-Key", "value": "placeholder"}
        )

        assert redacted == {"name": "X-Api-Key", "value": "[REDACTED]"}
        assert logger._redact_header_like({"name": "Accept", "value": "*/*"}) is None

    def test_log_line_carries_correlation_id_and_fields(self, caplog):
        logger = StructuredLogger("tests.structured")

        with patch("core.error_handler.get_settings") as settings:
            settings.return_value.ENVIRONMENT = "development"
            with caplog.at_level("INFO", logger="tests.structured"):
                logger.info("Streaming assistant response", model="gpt-oss")

        [record] = caplog.records
        assert "Streaming assistant response model=gpt-oss" in record.getMessage()
        assert record.structured_data["model"] == "gpt-oss"
        assert record.structured_data["correlation_id"]
