"""Job repository.

Every status transition is a conditional UPDATE guarded by the status and
attempt count the caller observed. A transition that matched no row returns
False and the caller must treat the job as owned by someone else.
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from postflow.db.base import utcnow
from postflow.db.models.job import JobRow
from postflow.models.enums import JobStatus
from postflow.repositories.base import BaseRepository

due_at = func.coalesce(JobRow.next_retry_at, JobRow.scheduled_for)


class JobRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, JobRow)

    async def get(self, job_id: str) -> JobRow | None:
        return await self.get_by_id("job_id", job_id)

    async def list_due(self, now: datetime, limit: int) -> list[JobRow]:
        """Pending jobs whose due time has passed, earliest first."""
        stmt = (
            select(JobRow)
            .where(and_(JobRow.status == JobStatus.PENDING, due_at <= now))
            .order_by(due_at.asc(), JobRow.job_id.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_stale(self, now: datetime, lease: timedelta, limit: int) -> list[JobRow]:
        """Jobs stuck in processing for longer than the lease."""
        stmt = (
            select(JobRow)
            .where(
                and_(
                    JobRow.status == JobStatus.PROCESSING,
                    JobRow.started_at <= now - lease,
                )
            )
            .order_by(JobRow.started_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_tenant(
        self,
        tenant_id: str,
        status: str | None = None,
        limit: int = 50,
    ) -> list[JobRow]:
        stmt = select(JobRow).where(JobRow.tenant_id == tenant_id)
        if status:
            stmt = stmt.where(JobRow.status == status)
        stmt = stmt.order_by(JobRow.scheduled_for.asc()).limit(limit).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_group(self, group_id: str) -> list[JobRow]:
        stmt = (
            select(JobRow)
            .where(JobRow.group_id == group_id)
            .order_by(JobRow.platform.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def last_published_by_platform(self, tenant_id: str) -> dict[str, datetime]:
        """Most recent successful publish time per platform for a tenant."""
        stmt = (
            select(JobRow.platform, func.max(JobRow.completed_at))
            .where(
                and_(
                    JobRow.tenant_id == tenant_id,
                    JobRow.status == JobStatus.COMPLETED,
                    JobRow.platform.is_not(None),
                )
            )
            .group_by(JobRow.platform)
        )
        result = await self.session.execute(stmt)
        return {platform: completed_at for platform, completed_at in result.all() if completed_at}

    # ------------------------------------------------------------------
    # Conditional transitions
    # ------------------------------------------------------------------

    async def _transition(
        self,
        job_id: str,
        *conditions,
        **values: Any,
    ) -> bool:
        values.setdefault("updated_at", utcnow())
        stmt = (
            update(JobRow)
            .where(JobRow.job_id == job_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def claim(self, job_id: str, expected_attempts: int, now: datetime) -> bool:
        """pending -> processing, only if still pending, unchanged and due."""
        return await self._transition(
            job_id,
            JobRow.status == JobStatus.PENDING,
            JobRow.attempts == expected_attempts,
            due_at <= now,
            status=JobStatus.PROCESSING,
            attempts=expected_attempts + 1,
            started_at=now,
            next_retry_at=None,
        )

    async def complete(self, job_id: str, attempts: int, result: dict, now: datetime) -> bool:
        return await self._transition(
            job_id,
            JobRow.status == JobStatus.PROCESSING,
            JobRow.attempts == attempts,
            status=JobStatus.COMPLETED,
            result=result,
            last_error=None,
            error_code=None,
            completed_at=now,
        )

    async def fail(
        self,
        job_id: str,
        attempts: int,
        error: str,
        error_code: str,
        now: datetime,
    ) -> bool:
        return await self._transition(
            job_id,
            JobRow.status == JobStatus.PROCESSING,
            JobRow.attempts == attempts,
            status=JobStatus.FAILED,
            last_error=error,
            error_code=error_code,
            completed_at=now,
        )

    async def requeue(
        self,
        job_id: str,
        attempts: int,
        next_retry_at: datetime,
        error: str,
        error_code: str,
    ) -> bool:
        return await self._transition(
            job_id,
            JobRow.status == JobStatus.PROCESSING,
            JobRow.attempts == attempts,
            status=JobStatus.PENDING,
            next_retry_at=next_retry_at,
            last_error=error,
            error_code=error_code,
        )

    async def cancel(self, job_id: str, now: datetime) -> bool:
        """pending -> cancelled. Never touches an in-flight attempt."""
        return await self._transition(
            job_id,
            JobRow.status == JobStatus.PENDING,
            status=JobStatus.CANCELLED,
            next_retry_at=None,
            last_error="Cancelled before execution",
            error_code="cancelled",
            completed_at=now,
        )

    async def set_trigger_ref(self, job_id: str, trigger_ref: str | None) -> bool:
        return await self._transition(job_id, trigger_ref=trigger_ref)
