"""Shared test fixtures."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import LockNotOwnedError
from sqlalchemy.ext.asyncio import create_async_engine

from postflow.config import Settings
from postflow.db.base import Base
from postflow.db.engine import create_session_factory
# Import all models to register with Base.metadata
import postflow.db.models  # noqa: F401
from postflow.models.credential import Credential
from postflow.models.enums import JobKind, JobStatus
from postflow.repositories.credential_repo import CredentialRepository
from postflow.repositories.job_repo import JobRepository
from postflow.services.id_generator import generate_id
from postflow.workers.executor import JobExecutor

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeLock:
    """Token-owned lock with the acquire/release contract of redis.asyncio.lock.Lock."""

    def __init__(self, redis, name, timeout=None, sleep=0.1, blocking_timeout=None):
        self.redis = redis
        self.name = name
        self.sleep = sleep
        self.blocking_timeout = blocking_timeout
        self.token = uuid.uuid4().hex

    async def acquire(self):
        loop = asyncio.get_running_loop()
        deadline = None if self.blocking_timeout is None else loop.time() + self.blocking_timeout
        while not await self.redis.set(self.name, self.token, nx=True):
            if deadline is not None and loop.time() >= deadline:
                return False
            await asyncio.sleep(self.sleep)
        return True

    async def release(self):
        if self.redis.values.get(self.name) != self.token:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")
        del self.redis.values[self.name]


class FakeRedis:
    """The subset of redis.asyncio used by the trigger and credential locks."""

    def __init__(self):
        self.zsets: dict[str, dict[str, float]] = {}
        self.values: dict[str, str] = {}
        self.fail_writes = False

    async def zadd(self, key, mapping):
        if self.fail_writes:
            raise ConnectionError("redis unavailable")
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def zrem(self, key, member):
        return 1 if self.zsets.get(key, {}).pop(member, None) is not None else 0

    async def zrangebyscore(self, key, min, max, start=None, num=None):
        items = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1])
        members = [member for member, score in items if score <= float(max)]
        if num is not None:
            members = members[start or 0:(start or 0) + num]
        return members

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0

    def lock(self, name, timeout=None, sleep=0.1, blocking_timeout=None):
        return FakeLock(self, name, timeout=timeout, sleep=sleep, blocking_timeout=blocking_timeout)

    async def ping(self):
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    return Settings(
        retry_base_seconds=60,
        token_refresh_grace_seconds=60,
        sweep_batch_size=10,
        sweep_concurrency=5,
        processing_lease_seconds=900,
        twitter_client_id="tw-client",
        twitter_client_secret="tw-secret",
        ai_service_url=None,
    )


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine so separate sessions use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'postflow_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def make_executor(session_factory, clock, test_settings):
    """Build an executor whose outbound HTTP goes through ``handler``."""
    clients: list[httpx.AsyncClient] = []

    def _make(handler, **kwargs) -> JobExecutor:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(http_client)
        kwargs.setdefault("settings", test_settings)
        return JobExecutor(session_factory, http_client, clock=clock, **kwargs)

    yield _make
    for http_client in clients:
        await http_client.aclose()


@pytest.fixture
def add_job(session_factory, clock):
    """Insert a job row directly, bypassing scheduling validation."""

    async def _add(
        platform: str | None = "twitter",
        payload: dict | None = None,
        scheduled_for: datetime | None = None,
        kind: str = JobKind.PUBLISH,
        tenant_id: str = "tenant_a",
        max_attempts: int = 3,
        backoff_multiplier: float = 2.0,
        **fields,
    ) -> str:
        job_id = generate_id("job_")
        async with session_factory() as session:
            await JobRepository(session).create(
                job_id=job_id,
                tenant_id=tenant_id,
                kind=kind,
                platform=platform,
                payload=payload if payload is not None else {"text": "Hello from postflow"},
                status=fields.pop("status", JobStatus.PENDING),
                scheduled_for=scheduled_for or clock.now - timedelta(seconds=1),
                attempts=fields.pop("attempts", 0),
                max_attempts=max_attempts,
                backoff_multiplier=backoff_multiplier,
                **fields,
            )
            await session.commit()
        return job_id

    return _add


@pytest.fixture
def add_credential(session_factory, clock):
    async def _add(
        platform: str = "twitter",
        tenant_id: str = "tenant_a",
        access_token: str = "access-old",
        refresh_token: str | None = "refresh-old",
        expires_in: int | None = 3600,
        metadata: dict | None = None,
    ) -> Credential:
        credential = Credential(
            tenant_id=tenant_id,
            platform=platform,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=clock.now + timedelta(seconds=expires_in) if expires_in is not None else None,
            metadata=metadata or {},
        )
        async with session_factory() as session:
            await CredentialRepository(session).put(credential)
            await session.commit()
        return credential

    return _add


@pytest.fixture
def get_job(session_factory):
    async def _get(job_id: str):
        async with session_factory() as session:
            return await JobRepository(session).get(job_id)

    return _get


@pytest.fixture
def get_credential(session_factory):
    async def _get(tenant_id: str = "tenant_a", platform: str = "twitter"):
        async with session_factory() as session:
            row = await CredentialRepository(session).get(tenant_id, platform)
            return Credential.from_row(row) if row else None

    return _get


def tweet_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(201, json={"data": {"id": "1790000000000000001", "text": "ok"}})


@pytest.fixture
def app(db_engine, session_factory, clock, make_executor):
    """Create a test application instance over the temp-file DB."""
    from postflow.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.redis = None
    _app.state.trigger = None
    _app.state.clock = clock
    _app.state.executor = make_executor(tweet_ok)
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
