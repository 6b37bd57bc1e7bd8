"""Smoke tests for health and app wiring."""

from httpx import AsyncClient

from app.core.config import get_settings


async def test_health_returns_ok(client: AsyncClient) -> None:
    """GET /api/v1/health returns 200 and status ok."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data.get("status") == "ok"
    assert data["service"] == get_settings().app_name


async def test_readiness_checks_database(client: AsyncClient) -> None:
    """GET /api/v1/health/ready round-trips the database; scheduler is off in tests."""
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok", "scheduler": "disabled"}


async def test_request_id_header_is_echoed(client: AsyncClient) -> None:
    header = get_settings().request_id_header
    response = await client.get("/api/v1/health", headers={header: "req-123"})
    assert response.headers.get(header) == "req-123"


async def test_missing_tenant_header_is_rejected(client: AsyncClient) -> None:
    response = await client.get("/api/v1/workflows")
    assert response.status_code == 400
    assert get_settings().tenant_header_name in response.json()["message"]
