from __future__ import annotations

import pytest

from kidwallet_api.core.settings import settings


@pytest.mark.asyncio
async def test_ledger_snapshot_requires_key(client) -> None:
    previous_key = settings.wallet_api_key
    settings.wallet_api_key = "snapshot-key"

    try:
        response = await client.get("/api/v1/observability/ledger")
        assert response.status_code == 401
    finally:
        settings.wallet_api_key = previous_key


@pytest.mark.asyncio
async def test_ledger_snapshot_counts_awards_and_caps(client) -> None:
    award = {"subjectKey": "child-1", "amount": 400, "reason": "Math Sprint reward", "idempotencyKey": "game:mathsprint:1"}
    await client.post("/api/v1/points/awards", json=award)
    await client.post("/api/v1/points/awards", json=award)
    await client.post(
        "/api/v1/points/awards",
        json={"subjectKey": "child-1", "amount": 300, "reason": "StarCatcher reward"},
    )
    await client.post(
        "/api/v1/points/awards",
        json={"subjectKey": "child-1", "amount": 5, "reason": "debug award"},
    )
    await client.get("/api/v1/wallets/child-1")

    previous_key = settings.wallet_api_key
    settings.wallet_api_key = "snapshot-key"

    try:
        response = await client.get("/api/v1/observability/ledger", headers={"X-API-Key": "snapshot-key"})
    finally:
        settings.wallet_api_key = previous_key

    assert response.status_code == 200
    snapshot = response.json()
    assert snapshot["awards"] == {"recorded": 3, "duplicates": 1}
    assert snapshot["caps"] == {"clamped:games": 1, "excess_points:games": 200}
    assert snapshot["exclusions"] == {"entries": 1, "points": 5}


@pytest.mark.asyncio
async def test_prometheus_metrics_render(client, reset_ledger_store) -> None:
    reset_ledger_store.record_award(duplicate=False)
    reset_ledger_store.record_cap_clamp("games", 150)
    reset_ledger_store.record_redemption_transition("Approved")

    response = await client.get("/api/v1/observability/prometheus")

    assert response.status_code == 200
    body = response.text
    assert "kidwallet_awards_recorded_total 1" in body
    assert 'kidwallet_cap_excess_points_total{category="games"} 150' in body
    assert 'kidwallet_redemption_transitions_total{status="approved"} 1' in body
