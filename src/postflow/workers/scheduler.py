"""Background loops that deliver due jobs to the executor."""

import asyncio
import logging

from postflow.models.job import SweepResult
from postflow.workers.executor import JobExecutor

logger = logging.getLogger(__name__)


async def trigger_due_jobs(executor: JobExecutor) -> SweepResult:
    """One sweep over the job store: recover stale claims, run due jobs."""
    return await executor.sweep()


async def run_sweeper(app, interval: float) -> None:
    """Background task that periodically sweeps the job store for due jobs."""
    logger.info("Job sweeper started (interval=%ss)", interval)

    while True:
        try:
            await asyncio.sleep(interval)

            executor = getattr(app.state, "executor", None)
            if not executor:
                continue

            await trigger_due_jobs(executor)

        except asyncio.CancelledError:
            logger.info("Job sweeper stopped")
            break
        except Exception as exc:
            logger.exception("Sweeper error: %s", exc)


async def deliver_triggered_jobs(executor: JobExecutor) -> int:
    """Hand every due at-time trigger to the executor. Returns the delivery count."""
    trigger = executor.trigger
    if trigger is None:
        return 0

    job_ids = await trigger.pop_due(executor.clock(), limit=executor.settings.sweep_batch_size)
    if job_ids:
        await executor.run_batch(job_ids)
    return len(job_ids)


async def run_trigger_poller(app, interval: float) -> None:
    """Background task that delivers jobs whose at-time trigger fired."""
    logger.info("Trigger poller started (interval=%ss)", interval)

    while True:
        try:
            executor = getattr(app.state, "executor", None)
            delivered = await deliver_triggered_jobs(executor) if executor else 0
            if not delivered:
                await asyncio.sleep(interval)

        except asyncio.CancelledError:
            logger.info("Trigger poller stopped")
            break
        except Exception as exc:
            logger.exception("Trigger poller error: %s", exc)
            await asyncio.sleep(interval)
