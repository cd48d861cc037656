import pytest


@pytest.mark.asyncio
async def test_root_health_reports_version(client) -> None:
    response = await client.get("/healthz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["version"] == "0.1.0"


@pytest.mark.asyncio
async def test_readyz_reports_ledger_store(client) -> None:
    response = await client.get("/api/v1/readyz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    assert payload["components"]["ledger_store"]["status"] == "ready"
