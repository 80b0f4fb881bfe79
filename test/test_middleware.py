"""
Tests for the request logging middleware and JSON log formatter
"""

import json
import logging

import pytest

from geofora.middleware.logging import JsonLogFormatter, RequestIdFilter, request_id_var


def make_record(message: str = "Export %s completed", *args, **extra) -> logging.LogRecord:
    record = logging.makeLogRecord(
        {"name": "geofora.services.export_service", "levelname": "INFO", "msg": message, "args": args}
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonLogFormatter:
    def test_basic_fields(self):
        entry = json.loads(JsonLogFormatter().format(make_record("Export %s completed", "export_1")))

        assert entry["message"] == "Export export_1 completed"
        assert entry["logger"] == "geofora.services.export_service"
        assert entry["level"] == "INFO"
        assert "request_id" not in entry

    def test_extra_fields_flattened(self):
        record = make_record("GET /api/exports 200", status_code=200, path="/api/exports")
        entry = json.loads(JsonLogFormatter().format(record))

        assert entry["status_code"] == 200
        assert entry["path"] == "/api/exports"

    def test_request_id_from_context(self):
        token = request_id_var.set("req-9")
        try:
            record = make_record("hello")
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)

        assert json.loads(JsonLogFormatter().format(record))["request_id"] == "req-9"


class TestStructuredLoggingMiddleware:
    @pytest.mark.asyncio
    async def test_generates_request_id(self, client):
        response = await client.get("/api/exports/formats")

        assert response.status_code == 200
        assert len(response.headers["X-Request-ID"]) == 32

    @pytest.mark.asyncio
    async def test_access_line_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="geofora.access"):
            await client.get("/api/exports/formats")

        records = [r for r in caplog.records if r.name == "geofora.access"]
        assert len(records) == 1
        assert records[0].status_code == 200
        assert records[0].path == "/api/exports/formats"

    @pytest.mark.asyncio
    async def test_probes_not_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="geofora.access"):
            await client.get("/health")

        assert not [r for r in caplog.records if r.name == "geofora.access"]
