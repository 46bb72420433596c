"""Tests for middleware and logging components."""
import pytest
from httpx import AsyncClient, ASGITransport
from tokenvault.main import app
from tokenvault.logging import add_module_info, service_name_adder


@pytest.mark.asyncio
async def test_correlation_id_injection():
    """Test that correlation ID is auto-generated if not provided."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/tokens/actions")
        assert response.status_code == 200
        assert "X-Correlation-ID" in response.headers
        assert len(response.headers["X-Correlation-ID"]) == 36


@pytest.mark.asyncio
async def test_correlation_id_preserved():
    """Test that provided correlation ID is preserved."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        correlation_id = "test-correlation-123"
        response = await client.get(
            "/tokens/actions",
            headers={"X-Correlation-ID": correlation_id}
        )
        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"] == correlation_id


@pytest.mark.asyncio
async def test_correlation_id_on_error_responses():
    """Test that error responses carry the correlation ID too."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(
            "/tokens/999999",
            headers={"X-Correlation-ID": "missing-token-check"}
        )
        assert response.status_code == 404
        assert response.headers["X-Correlation-ID"] == "missing-token-check"


def test_service_name_processor():
    add_service = service_name_adder("tokenvault")

    event = add_service(None, "info", {"event": "token.issued"})

    assert event == {"event": "token.issued", "service": "tokenvault"}


def test_module_info_processor():
    event = add_module_info(None, "info", {"event": "token.issued"})

    assert event["event"] == "token.issued"
    assert "module" in event
    assert "line" in event
