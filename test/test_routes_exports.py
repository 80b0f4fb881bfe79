"""
Tests for Export Routes

Tests queuing, polling and downloading exports over HTTP.
"""

import json

import pytest
from utils.mock_utils import create_test_questions

from geofora.schemas.consent import DataScopePolicy

EXPORT_BODY = {
    "organizationId": 1,
    "provider": "anthropic",
    "format": "json",
    "contentTypes": ["questions"],
    "includeMetadata": True,
}


@pytest.fixture
async def seeded(services, session_factory, clock):
    await services.consent.grant_consent(1, 2, DataScopePolicy(), "1.0.0")
    await create_test_questions(session_factory, 3, clock.now)
    return services


class TestExportRoutes:
    """Test export API endpoints"""

    @pytest.mark.asyncio
    async def test_export_round_trip(self, client, seeded):
        response = await client.post("/api/exports", json=EXPORT_BODY)

        assert response.status_code == 202
        job = response.json()
        assert job["status"] == "pending"

        await seeded.dispatcher.drain()

        response = await client.get(f"/api/exports/{job['id']}")
        assert response.status_code == 200
        completed = response.json()
        assert completed["status"] == "completed"
        assert completed["recordCount"] == 3
        assert completed["downloadUrl"].endswith(f"/api/exports/download/{job['id']}")

        response = await client.get(f"/api/exports/download/{job['id']}")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert f"{job['id']}.json" in response.headers["content-disposition"]
        assert len(json.loads(response.content)) == 3

        metadata = (await client.get(f"/api/exports/{job['id']}/metadata")).json()
        assert metadata["totalRecords"] == 3
        assert metadata["provider"] == "anthropic"

    @pytest.mark.asyncio
    async def test_invalid_config_is_400(self, client):
        response = await client.post("/api/exports", json={**EXPORT_BODY, "format": "xml", "contentTypes": []})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["error_code"] == "VALIDATION_FAILED"
        assert error["details"]["errors"] == ["Valid format is required", "At least one content type is required"]

    @pytest.mark.asyncio
    async def test_unknown_export_is_404(self, client):
        response = await client.get("/api/exports/export_missing")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["error_code"] == "RESOURCE_EXPORT_NOT_FOUND"
        assert error["type"] == "Not Found"
        assert error["path"] == "/api/exports/export_missing"

    @pytest.mark.asyncio
    async def test_failed_export_reports_error(self, client, services, session_factory, clock):
        await create_test_questions(session_factory, 1, clock.now)
        job = (await client.post("/api/exports", json=EXPORT_BODY)).json()
        await services.dispatcher.drain()

        failed = (await client.get(f"/api/exports/{job['id']}")).json()
        assert failed["status"] == "failed"
        assert failed["error"]
        assert failed["recordCount"] == 0

    @pytest.mark.asyncio
    async def test_list_stats_and_delete(self, client, seeded):
        job = (await client.post("/api/exports", json=EXPORT_BODY)).json()
        await seeded.dispatcher.drain()

        listed = (await client.get("/api/exports", params={"provider": "anthropic"})).json()
        assert [item["id"] for item in listed] == [job["id"]]
        assert (await client.get("/api/exports", params={"provider": "openai"})).json() == []

        stats = (await client.get("/api/exports/stats")).json()
        assert stats["totalExports"] == 1
        assert stats["successfulExports"] == 1
        assert stats["providerDistribution"] == {"anthropic": 1}

        response = await client.delete(f"/api/exports/{job['id']}")
        assert response.status_code == 204
        assert (await client.get(f"/api/exports/{job['id']}")).status_code == 404
        assert (await client.delete(f"/api/exports/{job['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_formats_and_providers(self, client):
        formats = (await client.get("/api/exports/formats")).json()
        assert [f["format"] for f in formats] == ["json", "csv", "jsonl", "txt"]

        providers = (await client.get("/api/exports/providers")).json()
        assert len(providers) == 6
        assert {"provider", "description", "supportedFormats"} <= set(providers[0])

    @pytest.mark.asyncio
    async def test_trends(self, client, seeded):
        await client.post("/api/exports", json=EXPORT_BODY)
        await seeded.dispatcher.drain()

        trends = (await client.get("/api/exports/trends", params={"days": 7})).json()
        assert len(trends["dailyExports"]) == 7
        assert trends["providerTrends"] == {"anthropic": 1}
        assert trends["formatTrends"] == {"json": 1}
