"""FastAPI application factory and lifespan management."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from postflow.config import settings
from postflow.db.engine import create_db_engine, create_session_factory
from postflow.logging_config import configure_logging

# Configure logging at import time
_json_logs = os.environ.get("POSTFLOW_LOCAL_MODE", "0") != "1"
configure_logging(log_level=settings.log_level, json_output=_json_logs)

logger = logging.getLogger(__name__)


def _connect_redis():
    if settings.local_mode or not settings.redis_url:
        return None
    try:
        import redis.asyncio as aioredis
        return aioredis.from_url(settings.redis_url, decode_responses=True)
    except Exception:
        logger.warning("Redis not available, at-time trigger disabled")
        return None


def build_executor(session_factory, http_client: httpx.AsyncClient, redis=None):
    """Wire the job executor with the trigger and locks Redis makes available."""
    from postflow.services.credential_locks import CredentialLocks
    from postflow.workers.executor import JobExecutor
    from postflow.workers.trigger import RedisAtTimeTrigger

    trigger = RedisAtTimeTrigger(redis, key=settings.trigger_key) if redis is not None else None
    return JobExecutor(
        session_factory,
        http_client,
        settings=settings,
        trigger=trigger,
        credential_locks=CredentialLocks(redis, ttl_seconds=settings.credential_lock_ttl_seconds),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # Auto-create tables for SQLite (local dev, no Alembic migrations)
    if "sqlite" in db_url:
        from postflow.db.base import Base
        import postflow.db.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables created (local mode)")

    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)
    app.state.redis = _connect_redis()
    app.state.http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    executor = build_executor(app.state.db_session_factory, app.state.http_client, app.state.redis)
    app.state.executor = executor
    app.state.trigger = executor.trigger

    # With a trigger, the sweep is only a safety net
    from postflow.workers.scheduler import run_sweeper, run_trigger_poller

    tasks = []
    if executor.trigger is not None:
        tasks.append(asyncio.create_task(run_trigger_poller(app, settings.trigger_poll_interval_seconds)))
        tasks.append(asyncio.create_task(run_sweeper(app, settings.safety_sweep_interval_seconds)))
    else:
        tasks.append(asyncio.create_task(run_sweeper(app, settings.sweep_interval_seconds)))

    logger.info(
        "postflow API started (db=%s, trigger=%s)",
        "sqlite" if "sqlite" in db_url else "postgresql",
        "redis" if executor.trigger is not None else "sweep",
    )
    yield

    # Shutdown
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
    await app.state.http_client.aclose()
    if app.state.redis:
        await app.state.redis.aclose()
    await engine.dispose()
    logger.info("postflow API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="postflow API",
        version="0.1.0",
        description="Scheduled social media publishing with retries and token refresh.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from postflow.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    from postflow.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    from postflow.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
