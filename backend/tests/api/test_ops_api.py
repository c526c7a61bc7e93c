import pytest

from teentalk.settings import settings


@pytest.mark.asyncio
async def test_health_reports_ok(api_client):
	response = await api_client.get("/health")
	assert response.status_code == 200
	assert response.json()["status"] == "ok"
	assert response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_readiness_checks_redis(api_client):
	response = await api_client.get("/health/ready")
	assert response.status_code == 200
	assert response.json()["checks"]["redis"]["ok"] is True


@pytest.mark.asyncio
async def test_metrics_require_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "s3cret")
	assert (await api_client.get("/metrics")).status_code == 403

	response = await api_client.get("/metrics", headers={"X-Admin-Token": "s3cret"})
	assert response.status_code == 200
	assert "teentalk_http_requests_total" in response.text
