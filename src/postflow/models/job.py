"""Pydantic models for job scheduling requests and status projections."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from postflow.models.enums import GroupStatus, JobKind, JobStatus

MAX_ATTEMPTS_LIMIT = 5
MAX_BACKOFF_MULTIPLIER = 10.0


class RetryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(3, ge=1, le=MAX_ATTEMPTS_LIMIT)
    backoff_multiplier: float = Field(2.0, ge=1.0, le=MAX_BACKOFF_MULTIPLIER)


class ScheduleJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tenant_id: str = Field(..., min_length=1, max_length=128)
    kind: JobKind = JobKind.PUBLISH
    platform: str | None = None
    payload: dict[str, Any]
    scheduled_for: datetime
    retry_config: RetryConfig | None = None


class SchedulePostRequest(BaseModel):
    """One piece of content fanned out to several platforms."""

    model_config = ConfigDict(extra="forbid")

    tenant_id: str = Field(..., min_length=1, max_length=128)
    platforms: list[str] = Field(..., min_length=1)
    payload: dict[str, Any]
    scheduled_for: datetime
    retry_config: RetryConfig | None = None


class JobStatusModel(BaseModel):
    """Read-only projection of a job row."""

    model_config = ConfigDict(from_attributes=True)

    job_id: str
    tenant_id: str
    kind: JobKind
    platform: str | None = None
    group_id: str | None = None
    status: JobStatus
    scheduled_for: datetime
    attempts: int
    retry_config: RetryConfig
    next_retry_at: datetime | None = None
    last_error: str | None = None
    error_code: str | None = None
    result: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row) -> "JobStatusModel":
        return cls(
            job_id=row.job_id,
            tenant_id=row.tenant_id,
            kind=row.kind,
            platform=row.platform,
            group_id=row.group_id,
            status=row.status,
            scheduled_for=row.scheduled_for,
            attempts=row.attempts,
            retry_config=RetryConfig(
                max_attempts=row.max_attempts,
                backoff_multiplier=row.backoff_multiplier,
            ),
            next_retry_at=row.next_retry_at,
            last_error=row.last_error,
            error_code=row.error_code,
            result=row.result,
            started_at=row.started_at,
            completed_at=row.completed_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class GroupStatusModel(BaseModel):
    group_id: str
    tenant_id: str
    status: GroupStatus
    jobs: list[JobStatusModel]


class ExecutionOutcome(BaseModel):
    """Result of one executor run over one job id."""

    job_id: str
    claimed: bool
    status: JobStatus | None = None
    attempts: int | None = None
    error_code: str | None = None
    error: str | None = None
    next_retry_at: datetime | None = None


class SweepResult(BaseModel):
    processed: int
    recovered: int = 0
    results: list[ExecutionOutcome] = Field(default_factory=list)
