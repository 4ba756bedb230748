"""Job executor: runs attempts for job ids delivered by the scheduler or trigger."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from postflow.config import Settings
from postflow.config import settings as default_settings
from postflow.db.base import utcnow
from postflow.models.enums import ErrorClass, ErrorCode
from postflow.models.job import ExecutionOutcome, SweepResult
from postflow.platforms import get_publisher
from postflow.platforms.base import PublisherAdapter
from postflow.repositories.job_repo import JobRepository
from postflow.services.ai_client import AIContentClient
from postflow.services.credential_locks import CredentialLocks
from postflow.services.token_refresher import TokenRefresher
from postflow.workers.base import JobFailure
from postflow.workers.registry import get_worker
from postflow.workers.trigger import RedisAtTimeTrigger

logger = logging.getLogger(__name__)


class JobExecutor:
    """Holds the collaborators a worker needs and never raises from ``execute``."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        http_client: httpx.AsyncClient,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        trigger: RedisAtTimeTrigger | None = None,
        credential_locks: CredentialLocks | None = None,
        token_refresher: TokenRefresher | None = None,
        ai_client: AIContentClient | None = None,
        publishers: dict[str, PublisherAdapter] | None = None,
    ):
        self.session_factory = session_factory
        self.http_client = http_client
        self.settings = settings or default_settings
        self.clock = clock
        self.trigger = trigger
        self.credential_locks = credential_locks or CredentialLocks(
            ttl_seconds=self.settings.credential_lock_ttl_seconds
        )
        self.token_refresher = token_refresher or TokenRefresher(
            grace_seconds=self.settings.token_refresh_grace_seconds, clock=clock
        )
        self.ai_client = ai_client or AIContentClient(self.settings.ai_service_url, self.settings.ai_service_key)
        self._publishers = publishers or {}

    def publisher_for(self, platform: str | None) -> PublisherAdapter | None:
        if not platform:
            return None
        return self._publishers.get(platform) or get_publisher(platform)

    async def register_trigger(self, job_id: str, due_at: datetime) -> str | None:
        if self.trigger is None:
            return None
        ref = await self.trigger.register(job_id, due_at)
        if ref:
            async with self.session_factory() as session:
                await JobRepository(session).set_trigger_ref(job_id, ref)
                await session.commit()
        return ref

    async def execute(self, job_id: str) -> ExecutionOutcome:
        """Run at most one attempt of a job."""
        try:
            async with self.session_factory() as session:
                job = await JobRepository(session).get(job_id)
            if job is None:
                return ExecutionOutcome(job_id=job_id, claimed=False, error="job not found")

            worker = get_worker(job.kind)
            if worker is None:
                logger.error("No worker registered for job kind %s (job %s)", job.kind, job_id)
                return ExecutionOutcome(job_id=job_id, claimed=False, error=f"unknown job kind {job.kind}")
            return await worker.execute(job_id, self)
        except Exception as exc:
            logger.exception("Executor error for job %s", job_id)
            return ExecutionOutcome(job_id=job_id, claimed=False, error=str(exc) or type(exc).__name__)

    async def run_batch(self, job_ids: Iterable[str]) -> list[ExecutionOutcome]:
        """Execute job ids concurrently, bounded by the sweep concurrency."""
        semaphore = asyncio.Semaphore(self.settings.sweep_concurrency)

        async def _run(job_id: str) -> ExecutionOutcome:
            async with semaphore:
                return await self.execute(job_id)

        return list(await asyncio.gather(*(_run(job_id) for job_id in job_ids)))

    async def recover_stale(self) -> int:
        """Return jobs whose processing lease expired to the retry path."""
        now = self.clock()
        lease = timedelta(seconds=self.settings.processing_lease_seconds)
        async with self.session_factory() as session:
            stale = await JobRepository(session).list_stale(now, lease, self.settings.sweep_batch_size)

        recovered = 0
        for job in stale:
            worker = get_worker(job.kind)
            if worker is None:
                continue
            logger.warning("Job %s held processing since %s, recovering", job.job_id, job.started_at)
            failure = JobFailure(
                "Processing lease expired before the attempt finished",
                ErrorCode.LEASE_EXPIRED,
                ErrorClass.TRANSIENT,
            )
            outcome = await worker.record_failure(job, job.attempts, failure, self)
            if outcome.status is not None:
                recovered += 1
        return recovered

    async def sweep(self) -> SweepResult:
        """Recover expired leases, then execute one batch of due jobs."""
        recovered = await self.recover_stale()
        async with self.session_factory() as session:
            due = await JobRepository(session).list_due(self.clock(), self.settings.sweep_batch_size)
        results = await self.run_batch([job.job_id for job in due])
        processed = sum(1 for outcome in results if outcome.claimed)
        if processed or recovered:
            logger.info("Sweep processed %d job(s), recovered %d", processed, recovered)
        return SweepResult(processed=processed, recovered=recovered, results=results)
