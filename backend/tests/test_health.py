"""
Tests for operational endpoints and request correlation.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert data["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "booking_attempts_total" in response.text
    assert "payment_callbacks_total" in response.text


@pytest.mark.asyncio
async def test_request_id_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    generated = await client.get("/health")
    assert generated.headers["X-Request-ID"]
    assert "X-Response-Time" in generated.headers
