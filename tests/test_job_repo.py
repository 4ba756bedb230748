"""Job store conditional transitions and due-job queries."""

import asyncio
from datetime import timedelta

import pytest

from postflow.models.enums import JobStatus
from postflow.repositories.job_repo import JobRepository


async def _claim(session_factory, job_id, now):
    async with session_factory() as session:
        repo = JobRepository(session)
        job = await repo.get(job_id)
        claimed = await repo.claim(job_id, job.attempts, now)
        await session.commit()
        return claimed


@pytest.mark.asyncio
async def test_concurrent_claims_only_one_wins(session_factory, add_job, get_job, clock):
    job_id = await add_job()

    results = await asyncio.gather(*(_claim(session_factory, job_id, clock.now) for _ in range(8)))

    assert results.count(True) == 1
    job = await get_job(job_id)
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 1
    assert job.started_at == clock.now


@pytest.mark.asyncio
async def test_claim_requires_due_time(session_factory, add_job, get_job, clock):
    job_id = await add_job(scheduled_for=clock.now + timedelta(minutes=5))

    assert await _claim(session_factory, job_id, clock.now) is False
    assert (await get_job(job_id)).status == JobStatus.PENDING


@pytest.mark.asyncio
async def test_claim_with_stale_attempt_count_fails(db_session, add_job, clock):
    job_id = await add_job(attempts=1)
    repo = JobRepository(db_session)

    assert await repo.claim(job_id, 0, clock.now) is False
    assert await repo.claim(job_id, 1, clock.now) is True
    await db_session.commit()


@pytest.mark.asyncio
async def test_transitions_require_processing_and_claimed_attempts(db_session, add_job, clock):
    job_id = await add_job()
    repo = JobRepository(db_session)

    assert await repo.complete(job_id, 1, {"remote_id": "x"}, clock.now) is False
    assert await repo.claim(job_id, 0, clock.now) is True
    assert await repo.fail(job_id, 2, "boom", "transient", clock.now) is False
    assert await repo.complete(job_id, 1, {"remote_id": "x"}, clock.now) is True
    await db_session.commit()

    job = await repo.get(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.result == {"remote_id": "x"}
    assert job.completed_at == clock.now


@pytest.mark.asyncio
async def test_list_due_uses_retry_time_when_set(db_session, add_job, clock):
    early = await add_job(scheduled_for=clock.now - timedelta(minutes=10))
    retry_later = await add_job(
        scheduled_for=clock.now - timedelta(minutes=20),
        next_retry_at=clock.now + timedelta(minutes=2),
    )
    retry_due = await add_job(
        scheduled_for=clock.now - timedelta(minutes=30),
        next_retry_at=clock.now - timedelta(minutes=1),
    )
    await add_job(scheduled_for=clock.now + timedelta(hours=1))

    due = await JobRepository(db_session).list_due(clock.now, limit=10)

    assert [job.job_id for job in due] == [early, retry_due]
    assert retry_later not in [job.job_id for job in due]


@pytest.mark.asyncio
async def test_list_due_respects_limit(db_session, add_job, clock):
    for _ in range(4):
        await add_job()

    due = await JobRepository(db_session).list_due(clock.now, limit=3)
    assert len(due) == 3


@pytest.mark.asyncio
async def test_cancel_only_from_pending(db_session, add_job, clock):
    pending = await add_job()
    running = await add_job(status=JobStatus.PROCESSING, attempts=1, started_at=clock.now)
    repo = JobRepository(db_session)

    assert await repo.cancel(pending, clock.now) is True
    assert await repo.cancel(running, clock.now) is False
    await db_session.commit()

    job = await repo.get(pending)
    assert job.status == JobStatus.CANCELLED
    assert job.error_code == "cancelled"


@pytest.mark.asyncio
async def test_list_stale_finds_expired_leases(db_session, add_job, clock):
    stale = await add_job(status=JobStatus.PROCESSING, attempts=1, started_at=clock.now - timedelta(minutes=30))
    await add_job(status=JobStatus.PROCESSING, attempts=1, started_at=clock.now - timedelta(minutes=1))

    rows = await JobRepository(db_session).list_stale(clock.now, timedelta(minutes=15), limit=10)
    assert [row.job_id for row in rows] == [stale]
