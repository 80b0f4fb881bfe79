"""
Tests for Privacy & GDPR Routes and the health endpoints
"""

import json

import pytest
from utils.mock_utils import create_test_user


class TestPrivacySettingsRoutes:
    @pytest.mark.asyncio
    async def test_get_default_settings(self, client):
        response = await client.get("/api/privacy/settings/5")

        assert response.status_code == 200
        data = response.json()
        assert data["userId"] == 5
        assert data["dataProcessing"] == {
            "analytics": True,
            "personalization": False,
            "marketing": False,
            "research": False,
        }

    @pytest.mark.asyncio
    async def test_partial_update(self, client):
        response = await client.put("/api/privacy/settings/5", json={"notifications": {"dataExport": False}})

        assert response.status_code == 200
        assert response.json()["notifications"]["dataExport"] is False
        assert response.json()["notifications"]["dataBreach"] is True

    @pytest.mark.asyncio
    async def test_invalid_update_is_400(self, client):
        response = await client.put("/api/privacy/settings/5", json={"dataRetention": {"accountData": "forever"}})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["message"] == "Invalid privacy settings"
        assert len(error["details"]["errors"]) == 1


class TestGDPRRequestRoutes:
    @pytest.mark.asyncio
    async def test_access_request_round_trip(self, client, services, session_factory):
        await create_test_user(session_factory, 42, "dana")

        response = await client.post("/api/privacy/requests", json={"userId": 42, "type": "access"})

        assert response.status_code == 202
        request = response.json()
        assert request["status"] == "pending"

        await services.dispatcher.drain()

        completed = (await client.get(f"/api/privacy/requests/{request['id']}")).json()
        assert completed["status"] == "completed"
        assert completed["responseData"]["personalData"]["username"] == "dana"

        listed = (await client.get("/api/privacy/users/42/requests")).json()
        assert [r["id"] for r in listed] == [request["id"]]

    @pytest.mark.asyncio
    async def test_unsupported_type_is_400(self, client):
        response = await client.post("/api/privacy/requests", json={"userId": 42, "type": "delete-everything"})

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"field": "type"}

    @pytest.mark.asyncio
    async def test_unknown_request_is_404(self, client):
        response = await client.get("/api/privacy/requests/gdpr_missing")

        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "RESOURCE_GDPR_REQUEST_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_portability_download(self, client, services, session_factory):
        await create_test_user(session_factory, 42, "dana")
        request = (await client.post("/api/privacy/requests", json={"userId": 42, "type": "portability"})).json()
        await services.dispatcher.drain()

        response = await client.get(f"/api/privacy/download/{request['id']}")

        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert json.loads(response.content)["personalData"]["email"] == "dana@example.com"


class TestBreachRoutes:
    @pytest.mark.asyncio
    async def test_report_and_progress_breach(self, client):
        response = await client.post(
            "/api/privacy/breaches",
            json={"severity": "high", "description": "Leaked backup", "affectedUsers": 40, "dataTypes": ["email"]},
        )

        assert response.status_code == 201
        breach = response.json()
        assert breach["status"] == "investigating"
        assert breach["notificationsSent"] is True

        response = await client.patch(f"/api/privacy/breaches/{breach['id']}", json={"status": "resolved"})
        assert response.json()["status"] == "resolved"
        assert response.json()["resolvedAt"] is not None

        response = await client.patch(f"/api/privacy/breaches/{breach['id']}", json={"status": "contained"})
        assert response.status_code == 409
        assert response.json()["error"]["error_code"] == "INVALID_STATUS_TRANSITION"

        listed = (await client.get("/api/privacy/breaches")).json()
        assert [b["id"] for b in listed] == [breach["id"]]

    @pytest.mark.asyncio
    async def test_unknown_breach_is_404(self, client):
        assert (await client.get("/api/privacy/breaches/breach_missing")).status_code == 404
        response = await client.patch("/api/privacy/breaches/breach_missing", json={"status": "resolved"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_severity_is_422(self, client):
        response = await client.post("/api/privacy/breaches", json={"severity": "apocalyptic", "description": "x"})
        assert response.status_code == 422


class TestReportingRoutes:
    @pytest.mark.asyncio
    async def test_compliance_report(self, client):
        report = (await client.get("/api/privacy/compliance-report")).json()

        assert report["gdprCompliance"]["score"] == 65
        assert report["dataProtection"]["encryptionStatus"] is True
        assert report["userRights"]["accessRequests"] == 0
        assert report["dataBreaches"]["total"] == 0

    @pytest.mark.asyncio
    async def test_audit_logs_and_statistics(self, client):
        await client.put("/api/privacy/settings/5", json={"dataSharing": {"enabled": True}})

        logs = (await client.get("/api/privacy/audit-logs", params={"user_id": 5})).json()
        assert [log["action"] for log in logs] == ["privacy_settings_updated"]

        stats = (await client.get("/api/privacy/statistics")).json()
        assert stats["privacySettingsConfigured"] == 1
        assert stats["auditLogsTotal"] == 1


class TestHealthRoutes:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/ready")

        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["background_tasks"]["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_error_carries_request_id(self, client):
        response = await client.get("/api/privacy/breaches/breach_missing", headers={"X-Request-ID": "req-404"})

        assert response.status_code == 404
        assert response.json()["error"]["request_id"] == "req-404"
        assert response.headers["X-Request-ID"] == "req-404"
