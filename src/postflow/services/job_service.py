"""Scheduling entry points: create, cancel and inspect jobs."""

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from postflow.db.base import as_utc, utcnow
from postflow.db.models.job import JobRow
from postflow.errors.exceptions import ConflictError, NotFoundError, ValidationError
from postflow.models.content import PublishContent
from postflow.models.enums import GroupStatus, JobKind, JobStatus, Platform
from postflow.models.job import (
    GroupStatusModel,
    JobStatusModel,
    RetryConfig,
    ScheduleJobRequest,
    SchedulePostRequest,
)
from postflow.repositories.job_repo import JobRepository
from postflow.services.id_generator import generate_id
from postflow.workers.trigger import RedisAtTimeTrigger

logger = logging.getLogger(__name__)

_KNOWN_PLATFORMS = {p.value for p in Platform}


def group_status(statuses: list[str]) -> GroupStatus:
    """Aggregate the statuses of a group's per-platform jobs.

    Cancelled jobs only decide the outcome when every job was cancelled.
    """
    states = {str(status) for status in statuses}
    if states != {"cancelled"}:
        states.discard("cancelled")
    if not states or states == {"pending"}:
        return GroupStatus.PENDING
    if states == {"cancelled"}:
        return GroupStatus.CANCELLED
    # Pending beside finished jobs means the group is part way through
    if states & {"pending", "processing"}:
        return GroupStatus.PROCESSING
    if "completed" in states:
        return GroupStatus.PARTIAL if "failed" in states else GroupStatus.COMPLETED
    return GroupStatus.FAILED


class JobService:
    def __init__(
        self,
        session: AsyncSession,
        trigger: RedisAtTimeTrigger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.repo = JobRepository(session)
        self.trigger = trigger
        self.clock = clock

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, kind: str, platform: str | None, payload: dict, scheduled_for: datetime) -> datetime:
        scheduled_for = as_utc(scheduled_for)
        if scheduled_for <= self.clock():
            raise ValidationError(
                "scheduled_for must be in the future",
                details={"scheduled_for": scheduled_for.isoformat()},
            )

        if platform is not None and platform not in _KNOWN_PLATFORMS:
            raise ValidationError(
                f"Unknown platform '{platform}'",
                details={"allowed": sorted(_KNOWN_PLATFORMS)},
            )

        if kind == JobKind.PUBLISH:
            if platform is None:
                raise ValidationError("platform is required for publish jobs")
            try:
                PublishContent.model_validate(payload)
            except PydanticValidationError as exc:
                raise ValidationError(
                    "payload is not valid publish content",
                    details=exc.errors(include_url=False, include_context=False),
                )
        return scheduled_for

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def schedule_job(self, request: ScheduleJobRequest) -> JobRow:
        """Create a pending job and register its at-time trigger."""
        scheduled_for = self._validate(request.kind, request.platform, request.payload, request.scheduled_for)
        row = await self._create(request.tenant_id, request.kind, request.platform, request.payload,
                                 scheduled_for, request.retry_config)
        await self.session.commit()
        logger.info("Scheduled %s job %s for %s at %s", row.kind, row.job_id, row.platform, scheduled_for.isoformat())

        await self._register(row)
        return row

    async def schedule_post(self, request: SchedulePostRequest) -> GroupStatusModel:
        """Fan one piece of content out to one publish job per platform."""
        platforms = list(dict.fromkeys(request.platforms))
        scheduled_for = request.scheduled_for
        for platform in platforms:
            scheduled_for = self._validate(JobKind.PUBLISH, platform, request.payload, request.scheduled_for)

        group_id = generate_id("grp_")
        rows = [
            await self._create(request.tenant_id, JobKind.PUBLISH, platform, request.payload,
                               scheduled_for, request.retry_config, group_id=group_id)
            for platform in platforms
        ]
        await self.session.commit()
        logger.info("Scheduled post group %s on %s", group_id, ", ".join(platforms))

        for row in rows:
            await self._register(row)
        return self._group_model(group_id, rows)

    async def cancel_job(self, job_id: str) -> JobRow:
        """Cancel a pending job. In-flight and finished jobs cannot be cancelled."""
        row = await self.repo.get(job_id)
        if not row:
            raise NotFoundError("Job", job_id)
        if row.status == JobStatus.CANCELLED:
            return row
        if row.status != JobStatus.PENDING:
            raise ConflictError(
                f"Job '{job_id}' cannot be cancelled while {row.status}",
                details={"status": row.status},
            )

        cancelled = await self.repo.cancel(job_id, self.clock())
        await self.session.commit()
        if not cancelled:
            current = await self.repo.get(job_id)
            raise ConflictError(
                f"Job '{job_id}' was claimed before it could be cancelled",
                details={"status": current.status if current else None},
            )

        if self.trigger is not None:
            await self.trigger.remove(job_id)
        logger.info("Cancelled job %s", job_id)
        return await self.repo.get(job_id)

    async def get_job_status(self, job_id: str) -> JobStatusModel:
        row = await self.repo.get(job_id)
        if not row:
            raise NotFoundError("Job", job_id)
        return JobStatusModel.from_row(row)

    async def list_jobs(self, tenant_id: str, status: str | None = None, limit: int = 50) -> list[JobStatusModel]:
        rows = await self.repo.list_by_tenant(tenant_id, status=status, limit=limit)
        return [JobStatusModel.from_row(row) for row in rows]

    async def get_group_status(self, group_id: str) -> GroupStatusModel:
        rows = await self.repo.list_by_group(group_id)
        if not rows:
            raise NotFoundError("Post group", group_id)
        return self._group_model(group_id, rows)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create(
        self,
        tenant_id: str,
        kind: str,
        platform: str | None,
        payload: dict,
        scheduled_for: datetime,
        retry_config: RetryConfig | None,
        group_id: str | None = None,
    ) -> JobRow:
        retry_config = retry_config or RetryConfig()
        return await self.repo.create(
            job_id=generate_id("job_"),
            tenant_id=tenant_id,
            kind=kind,
            platform=platform,
            group_id=group_id,
            payload=payload,
            status=JobStatus.PENDING,
            scheduled_for=scheduled_for,
            attempts=0,
            max_attempts=retry_config.max_attempts,
            backoff_multiplier=retry_config.backoff_multiplier,
        )

    async def _register(self, row: JobRow) -> None:
        """Register the at-time trigger; a failure leaves the job to the sweep."""
        if self.trigger is None:
            return
        ref = await self.trigger.register(row.job_id, row.scheduled_for)
        if ref:
            await self.repo.set_trigger_ref(row.job_id, ref)
            await self.session.commit()

    def _group_model(self, group_id: str, rows: list[JobRow]) -> GroupStatusModel:
        return GroupStatusModel(
            group_id=group_id,
            tenant_id=rows[0].tenant_id,
            status=group_status([row.status for row in rows]),
            jobs=[JobStatusModel.from_row(row) for row in rows],
        )
