"""
Infrastructure Tests

Configuration loading, structured logging and Sentry event filtering.

Run with: pytest tests/test_infrastructure.py -v
"""

import json
import logging

import pytest
from fastapi import HTTPException

from config import Settings
from logging_config import JSONFormatter, RequestContextFilter, set_request_context, clear_request_context
from sentry_integration import filter_sensitive_data
from reconciliation.errors import InvalidStateError, NotFoundError, ValidationError
from utils.validation_errors import http_error_for, validate_required_uuid


class TestSettings:

    def test_internal_api_keys_combined(self):
        settings = Settings(INTERNAL_API_KEY="primary", INTERNAL_API_KEYS="second, third,")

        assert settings.internal_api_keys == ["primary", "second", "third"]

    def test_database_url_from_components(self):
        settings = Settings(
            DATABASE_URL="",
            POSTGRES_HOST="db",
            POSTGRES_USER="recon",
            POSTGRES_PASSWORD="secret",
        )

        assert settings.get_database_url() == "postgresql+asyncpg://recon:secret@db:5432/reconciliation"

    def test_database_url_missing(self):
        settings = Settings(DATABASE_URL="", POSTGRES_HOST="")

        with pytest.raises(ValueError):
            settings.get_database_url()

    def test_production_validation(self):
        settings = Settings(
            ENVIRONMENT="production",
            DATABASE_URL="postgresql+asyncpg://u:p@localhost/db",
            INTERNAL_API_KEY="short",
            CORS_ORIGINS="*",
        )

        errors = settings.validate_production_config()

        assert "INTERNAL_API_KEY should be at least 32 characters" in errors
        assert "CORS_ORIGINS cannot be '*' in production" in errors
        assert "DATABASE_URL cannot point to localhost in production" in errors

    def test_auto_reconcile_default(self):
        assert Settings().AUTO_RECONCILE_ON_UPLOAD is True

    def test_multiple_workers_flagged(self):
        settings = Settings(INTERNAL_API_KEY="k" * 32, WEB_CONCURRENCY=4)

        errors = settings.validate_production_config()

        assert any(e.startswith("WEB_CONCURRENCY > 1") for e in errors)

    def test_single_worker_not_flagged(self):
        settings = Settings(INTERNAL_API_KEY="k" * 32)

        assert not any("WEB_CONCURRENCY" in e for e in settings.validate_production_config())


class TestJSONLogging:

    def _record(self, **extra):
        record = logging.LogRecord(
            name="reconciliation.services.reconciliation_service",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Reconciliation event: %s",
            args=("reconciliation.run_completed",),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_extra_fields_included(self):
        record = self._record(event="reconciliation.run_completed", folder_id="folder-1")

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Reconciliation event: reconciliation.run_completed"
        assert data["service"] == "reconciliation"
        assert data["extra"] == {"event": "reconciliation.run_completed", "folder_id": "folder-1"}

    def test_request_id_attached(self):
        record = self._record()
        set_request_context("req-123")
        try:
            RequestContextFilter().filter(record)
        finally:
            clear_request_context()

        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-123"
        assert "extra" not in data


class TestSentryFiltering:

    def test_api_key_header_redacted(self):
        event = {
            "request": {"headers": {"X-Internal-Api-Key": "abc", "Content-Type": "application/json"}},
            "extra": {"folder_id": "folder-1", "nested": {"password": "x"}},
        }

        filtered = filter_sensitive_data(event, {})

        assert filtered["request"]["headers"]["X-Internal-Api-Key"] == "[REDACTED]"
        assert filtered["request"]["headers"]["Content-Type"] == "application/json"
        assert filtered["extra"]["folder_id"] == "folder-1"
        assert filtered["extra"]["nested"]["password"] == "[REDACTED]"


class TestErrorMapping:

    @pytest.mark.parametrize("error, status_code", [
        (NotFoundError("Folder f-1 not found"), 404),
        (InvalidStateError("Folder f-1 has no statement type"), 409),
        (ValidationError("Unknown document type", parameter="document_type"), 422),
    ])
    def test_status_per_error_type(self, error, status_code):
        exc = http_error_for(error)

        assert exc.status_code == status_code
        assert exc.detail == error.to_dict()

    def test_invalid_uuid_is_422(self):
        with pytest.raises(HTTPException) as exc_info:
            validate_required_uuid("not-a-uuid", "folder_id")

        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["error"] == "invalid_parameter"
