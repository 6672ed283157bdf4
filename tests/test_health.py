"""
Tests for the /health endpoint and the API root.

Verifies:
  - Returns HTTP 200 with status="ok" (API liveness check)
  - Returns expected JSON schema, including the configured engine
  - Active session count tracks the registry
  - Root / endpoint returns API metadata
"""

import pytest


@pytest.mark.asyncio
async def test_health_returns_200(client):
    """Health endpoint must always return 200 if the API process is alive."""
    response = await client.get("/health")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_response_schema(client):
    data = (await client.get("/health")).json()

    assert data["status"] == "ok"
    assert data["version"] == "0.1.0"
    assert data["engine"] == "deterministic"
    assert data["ai_mock_mode"] is True
    assert data["environment"] == "test"


@pytest.mark.asyncio
async def test_health_counts_sessions(client):
    assert (await client.get("/health")).json()["active_sessions"] == 0
    await client.post("/api/v1/detection/sessions")
    await client.post("/api/v1/detection/sessions")
    assert (await client.get("/health")).json()["active_sessions"] == 2


@pytest.mark.asyncio
async def test_root_endpoint(client):
    """Root / must return API metadata with status=running."""
    data = (await client.get("/")).json()
    assert data["name"] == "DeepCheck API"
    assert data["status"] == "running"
