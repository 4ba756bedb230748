"""Base worker interface: one attempt of one job, from claim to recorded outcome."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import TYPE_CHECKING

from postflow.db.models.job import JobRow
from postflow.logging_config import bind_job_context, unbind_job_context
from postflow.models.enums import ErrorClass, ErrorCode, JobStatus
from postflow.models.job import ExecutionOutcome
from postflow.repositories.job_repo import JobRepository

if TYPE_CHECKING:
    from postflow.workers.executor import JobExecutor

logger = logging.getLogger(__name__)


class JobFailure(Exception):
    """Classified failure of an attempt; decides between retry and terminal failure."""

    def __init__(self, message: str, error_code: ErrorCode, error_class: ErrorClass):
        self.message = message
        self.error_code = error_code
        self.error_class = error_class
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.error_class != ErrorClass.PERMANENT


def retry_delay(attempts: int, multiplier: float, base_seconds: int) -> timedelta:
    """Backoff before the next attempt, growing with the attempts made so far."""
    return timedelta(seconds=(multiplier**attempts) * base_seconds)


class BaseWorker(ABC):
    """Abstract base class for job workers."""

    @abstractmethod
    async def process(self, job: JobRow, executor: JobExecutor) -> dict:
        """Do the job's side effect and return its result.

        Raises:
            JobFailure: classified failure of this attempt.
        """
        ...

    async def execute(self, job_id: str, executor: JobExecutor) -> ExecutionOutcome:
        """Claim the job, process it, and record the outcome.

        A job that is missing, not pending, not yet due, or claimed by someone
        else is left untouched and reported with ``claimed=False``.
        """
        now = executor.clock()
        async with executor.session_factory() as session:
            repo = JobRepository(session)
            job = await repo.get(job_id)
            if job is None:
                return ExecutionOutcome(job_id=job_id, claimed=False, error="job not found")
            if job.status != JobStatus.PENDING:
                return ExecutionOutcome(job_id=job_id, claimed=False, status=job.status, attempts=job.attempts)

            claimed = await repo.claim(job_id, job.attempts, now)
            await session.commit()
            if not claimed:
                logger.debug("Job %s not claimed (not due or taken by another worker)", job_id)
                return ExecutionOutcome(job_id=job_id, claimed=False, status=job.status, attempts=job.attempts)

        attempts = job.attempts + 1
        bind_job_context(job.job_id, job.tenant_id, job.platform)
        try:
            logger.info("Job %s attempt %d/%d started (kind=%s)", job_id, attempts, job.max_attempts, job.kind)
            try:
                result = await self.process(job, executor)
            except JobFailure as failure:
                return await self.record_failure(job, attempts, failure, executor)
            except Exception as exc:
                logger.exception("Job %s raised an unexpected error", job_id)
                failure = JobFailure(str(exc) or type(exc).__name__, ErrorCode.TRANSIENT, ErrorClass.TRANSIENT)
                return await self.record_failure(job, attempts, failure, executor)
            return await self.record_success(job, attempts, result, executor)
        finally:
            unbind_job_context()

    async def record_success(
        self,
        job: JobRow,
        attempts: int,
        result: dict,
        executor: JobExecutor,
    ) -> ExecutionOutcome:
        async with executor.session_factory() as session:
            recorded = await JobRepository(session).complete(job.job_id, attempts, result, executor.clock())
            await session.commit()

        if not recorded:
            logger.warning("Job %s lost its claim before completion could be recorded", job.job_id)
            return ExecutionOutcome(job_id=job.job_id, claimed=True, attempts=attempts, error="claim lost")

        logger.info("Job %s completed on attempt %d", job.job_id, attempts)
        return ExecutionOutcome(job_id=job.job_id, claimed=True, status=JobStatus.COMPLETED, attempts=attempts)

    async def record_failure(
        self,
        job: JobRow,
        attempts: int,
        failure: JobFailure,
        executor: JobExecutor,
    ) -> ExecutionOutcome:
        """Requeue with backoff while retries remain, otherwise fail for good."""
        now = executor.clock()
        terminal = not failure.retryable or attempts >= job.max_attempts
        next_retry_at = None

        async with executor.session_factory() as session:
            repo = JobRepository(session)
            if terminal:
                recorded = await repo.fail(job.job_id, attempts, failure.message, failure.error_code, now)
            else:
                delay = retry_delay(attempts, job.backoff_multiplier, executor.settings.retry_base_seconds)
                next_retry_at = now + delay
                recorded = await repo.requeue(
                    job.job_id, attempts, next_retry_at, failure.message, failure.error_code
                )
            await session.commit()

        if not recorded:
            logger.warning("Job %s lost its claim before failure could be recorded", job.job_id)
            return ExecutionOutcome(job_id=job.job_id, claimed=True, attempts=attempts, error="claim lost")

        if terminal:
            logger.warning(
                "Job %s failed permanently after %d attempt(s) [%s]: %s",
                job.job_id,
                attempts,
                failure.error_code,
                failure.message,
            )
            return ExecutionOutcome(
                job_id=job.job_id,
                claimed=True,
                status=JobStatus.FAILED,
                attempts=attempts,
                error_code=str(failure.error_code),
                error=failure.message,
            )

        logger.info(
            "Job %s attempt %d failed [%s], retrying at %s",
            job.job_id,
            attempts,
            failure.error_code,
            next_retry_at.isoformat(),
        )
        await executor.register_trigger(job.job_id, next_retry_at)
        return ExecutionOutcome(
            job_id=job.job_id,
            claimed=True,
            status=JobStatus.PENDING,
            attempts=attempts,
            error_code=str(failure.error_code),
            error=failure.message,
            next_retry_at=next_retry_at,
        )
