"""Tests for GET /api/health and the root endpoint."""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert data["ollama"] == "ok"
    assert data["queue"] == "ok"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_health_degraded_when_ollama_down(client: AsyncClient, llm):
    llm.healthy = False
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["ollama"] == "error"
    assert data["database"] == "ok"


@pytest.mark.asyncio
@pytest.mark.parametrize("path, expected", [("/api/health/ready", "ready"), ("/api/health/live", "alive")])
async def test_health_endpoints(client: AsyncClient, path, expected):
    resp = await client.get(path)
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == expected
    assert data["service"] == "words-wall-backend"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Words Wall API"
    assert resp.headers["X-Process-Time"].endswith("ms")
