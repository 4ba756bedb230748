"""HTTP routes for scheduling, status, cancellation, sweeps and connections."""

from datetime import timedelta

import pytest


def _body(clock, **overrides):
    body = {
        "tenant_id": "tenant_a",
        "platform": "twitter",
        "payload": {"text": "From the API"},
        "scheduled_for": (clock.now + timedelta(minutes=1)).isoformat(),
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_schedule_and_get_status(client, clock):
    response = await client.post("/api/v1/jobs", json=_body(clock))
    assert response.status_code == 201
    job_id = response.json()["job_id"]
    assert response.json()["status"] == "pending"

    response = await client.get(f"/api/v1/jobs/{job_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "pending"
    assert data["retry_config"] == {"max_attempts": 3, "backoff_multiplier": 2.0}
    assert response.headers["x-trace-id"].startswith("trc_")


@pytest.mark.asyncio
async def test_schedule_validation_errors_are_400(client, clock):
    past = await client.post(
        "/api/v1/jobs",
        json=_body(clock, scheduled_for=(clock.now - timedelta(minutes=1)).isoformat()),
    )
    assert past.status_code == 400
    assert past.json()["error"]["code"] == "VALIDATION_ERROR"

    too_many = await client.post("/api/v1/jobs", json=_body(clock, retry_config={"max_attempts": 9}))
    assert too_many.status_code == 400
    assert too_many.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_unknown_job_is_404(client):
    response = await client.get("/api/v1/jobs/job_missing", headers={"X-Trace-Id": "trc_fixed"})
    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["trace_id"] == "trc_fixed"


@pytest.mark.asyncio
async def test_cancel_then_cancel_running_conflict(client, clock, add_job):
    job_id = (await client.post("/api/v1/jobs", json=_body(clock))).json()["job_id"]

    response = await client.post(f"/api/v1/jobs/{job_id}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    running = await add_job(status="processing", attempts=1, started_at=clock.now)
    response = await client.post(f"/api/v1/jobs/{running}/cancel")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_trigger_runs_due_jobs(client, clock, add_credential):
    await add_credential()
    job_id = (await client.post("/api/v1/jobs", json=_body(clock))).json()["job_id"]

    clock.advance(120)
    response = await client.post("/api/v1/jobs/trigger")
    assert response.status_code == 200
    data = response.json()
    assert data["processed"] == 1
    assert data["results"][0]["job_id"] == job_id
    assert data["results"][0]["status"] == "completed"

    status = (await client.get(f"/api/v1/jobs/{job_id}")).json()
    assert status["result"]["remote_id"] == "1790000000000000001"


@pytest.mark.asyncio
async def test_post_group_and_tenant_listing(client, clock):
    response = await client.post(
        "/api/v1/posts",
        json={
            "tenant_id": "tenant_a",
            "platforms": ["twitter", "facebook"],
            "payload": {"text": "Both"},
            "scheduled_for": (clock.now + timedelta(minutes=5)).isoformat(),
        },
    )
    assert response.status_code == 201
    group = response.json()
    assert group["status"] == "pending"
    assert len(group["jobs"]) == 2

    response = await client.get(f"/api/v1/posts/{group['group_id']}")
    assert response.status_code == 200

    listed = await client.get("/api/v1/tenants/tenant_a/jobs", params={"status": "pending"})
    assert len(listed.json()) == 2


@pytest.mark.asyncio
async def test_credential_intake_and_connections(client, clock):
    response = await client.put(
        "/api/v1/tenants/tenant_a/credentials/twitter",
        json={
            "access_token": "at",
            "refresh_token": "rt",
            "expires_in": 7200,
            "metadata": {"username": "acme"},
            "scopes": "tweet.read tweet.write offline.access",
        },
    )
    assert response.status_code == 200
    assert "access_token" not in response.json()
    assert response.json()["has_refresh_token"] is True

    response = await client.get("/api/v1/tenants/tenant_a/connections")
    report = response.json()
    twitter = next(c for c in report["connectors"] if c["platform"] == "twitter")
    assert twitter["connected"] is True
    assert twitter["username"] == "acme"
    assert twitter["scopes"] == ["tweet.read", "tweet.write", "offline.access"]
    assert report["summary"]["connected"] == 1
    assert report["summary"]["total"] == 6


@pytest.mark.asyncio
async def test_expired_credential_without_refresh_needs_reconnect(client, clock, add_credential):
    await add_credential(platform="facebook", expires_in=-60, refresh_token=None)

    report = (await client.get("/api/v1/tenants/tenant_a/connections")).json()
    facebook = next(c for c in report["connectors"] if c["platform"] == "facebook")
    assert facebook["connected"] is False
    assert facebook["expired"] is True
    assert facebook["needs_reconnect"] is True
    assert facebook["error"] == "Token expired"


@pytest.mark.asyncio
async def test_credential_for_unknown_platform_is_rejected(client):
    response = await client.put("/api/v1/tenants/tenant_a/credentials/myspace", json={"access_token": "x"})
    assert response.status_code == 400
