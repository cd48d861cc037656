import pytest


@pytest.mark.asyncio
async def test_story_allowance_is_enforced(client) -> None:
    for expected_used in range(1, 4):
        response = await client.post("/api/v1/usage/child-1/story")
        assert response.status_code == 201
        assert response.json()["used"] == expected_used

    refused = await client.post("/api/v1/usage/child-1/story")
    assert refused.status_code == 429

    summary = await client.get("/api/v1/usage/child-1/story")
    assert summary.json() == {
        "subjectId": "child-1",
        "actionKind": "story",
        "window": "month",
        "used": 3,
        "limit": 3,
        "remaining": 0,
    }


@pytest.mark.asyncio
async def test_unlimited_action_reports_no_limit(client) -> None:
    await client.post("/api/v1/usage/child-1/drawing")

    response = await client.get("/api/v1/usage/child-1/drawing", params={"window": "day"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["used"] == 1
    assert payload["limit"] is None
    assert payload["remaining"] is None
