"""Job scheduling, status and sweep endpoints."""

from fastapi import APIRouter, Query

from postflow.dependencies import Executor, Jobs
from postflow.models.enums import JobStatus
from postflow.models.job import ScheduleJobRequest, SchedulePostRequest
from postflow.workers.scheduler import trigger_due_jobs

router = APIRouter(tags=["Jobs"])


@router.post("/jobs", status_code=201)
async def schedule_job(body: ScheduleJobRequest, jobs: Jobs) -> dict:
    row = await jobs.schedule_job(body)
    return {"job_id": row.job_id, "status": row.status, "scheduled_for": row.scheduled_for.isoformat()}


@router.post("/posts", status_code=201)
async def schedule_post(body: SchedulePostRequest, jobs: Jobs) -> dict:
    group = await jobs.schedule_post(body)
    return group.model_dump(mode="json", exclude_none=True)


@router.get("/posts/{group_id}")
async def get_post_status(group_id: str, jobs: Jobs) -> dict:
    group = await jobs.get_group_status(group_id)
    return group.model_dump(mode="json", exclude_none=True)


@router.post("/jobs/trigger")
async def trigger_jobs(executor: Executor) -> dict:
    """Run one sweep now; the same operation the periodic sweeper runs."""
    result = await trigger_due_jobs(executor)
    return result.model_dump(mode="json", exclude_none=True)


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, jobs: Jobs) -> dict:
    status = await jobs.get_job_status(job_id)
    return status.model_dump(mode="json", exclude_none=True)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, jobs: Jobs) -> dict:
    row = await jobs.cancel_job(job_id)
    return {"job_id": row.job_id, "status": row.status}


@router.get("/tenants/{tenant_id}/jobs")
async def list_tenant_jobs(
    tenant_id: str,
    jobs: Jobs,
    status: JobStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
) -> list[dict]:
    rows = await jobs.list_jobs(tenant_id, status=status, limit=limit)
    return [row.model_dump(mode="json", exclude_none=True) for row in rows]
