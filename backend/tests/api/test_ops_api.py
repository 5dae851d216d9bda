import pytest

from codex.settings import settings


@pytest.mark.asyncio
async def test_health_live(api_client):
	response = await api_client.get("/health/live")
	assert response.status_code == 200
	assert response.json()["status"] == "ok"
	assert response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_health_ready_reports_each_dependency(api_client, monkeypatch):
	monkeypatch.setattr(settings, "postgres_enabled", False)
	ready = await api_client.get("/health/ready")
	assert ready.status_code == 200
	assert ready.json() == {"status": "ok", "checks": {"redis": "ok"}}

	# The patched pool never comes up, so postgres is reported as degraded.
	monkeypatch.setattr(settings, "postgres_enabled", True)
	degraded = await api_client.get("/health/ready")
	assert degraded.status_code == 503
	assert degraded.json()["checks"]["postgres"] == "unavailable"


@pytest.mark.asyncio
async def test_metrics_requires_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", None)
	unconfigured = await api_client.get("/metrics")
	assert unconfigured.status_code == 403

	monkeypatch.setattr(settings, "obs_admin_token", "scrape-me")
	wrong = await api_client.get("/metrics", headers={"Authorization": "Bearer nope"})
	assert wrong.status_code == 403

	ok = await api_client.get("/metrics", headers={"X-Admin-Token": "scrape-me"})
	assert ok.status_code == 200
	assert "codex_http_requests_total" in ok.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	response = await api_client.get("/health/live", headers={"X-Request-Id": "req-123"})
	assert response.headers["X-Request-Id"] == "req-123"
