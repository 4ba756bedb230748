"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request

from postflow.db.base import utcnow
from postflow.services.connection_service import ConnectionService
from postflow.services.job_service import JobService
from postflow.workers.executor import JobExecutor


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


def get_clock(request: Request):
    """Return the app clock; tests replace it to control time."""
    return getattr(request.app.state, "clock", utcnow)


async def get_job_service(request: Request, db=Depends(get_db)) -> JobService:
    return JobService(db, trigger=getattr(request.app.state, "trigger", None), clock=get_clock(request))


async def get_connection_service(request: Request, db=Depends(get_db)) -> ConnectionService:
    executor = getattr(request.app.state, "executor", None)
    locks = executor.credential_locks if executor is not None else None
    return ConnectionService(db, clock=get_clock(request), locks=locks)


def get_executor(request: Request) -> JobExecutor:
    return request.app.state.executor


# Type aliases for dependency injection
Jobs = Annotated[JobService, Depends(get_job_service)]
Connections = Annotated[ConnectionService, Depends(get_connection_service)]
Executor = Annotated[JobExecutor, Depends(get_executor)]
