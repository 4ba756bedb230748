"""Pydantic models for platform credentials."""

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Credential(BaseModel):
    """Access/refresh token pair for one (tenant, platform)."""

    model_config = ConfigDict(extra="forbid")

    tenant_id: str
    platform: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    scopes: str | None = None

    @classmethod
    def from_row(cls, row) -> "Credential":
        return cls(
            tenant_id=row.tenant_id,
            platform=row.platform,
            access_token=row.access_token,
            refresh_token=row.refresh_token,
            expires_at=row.expires_at,
            metadata=row.account_metadata or {},
            scopes=row.scopes,
        )

    def is_expired(self, now: datetime, grace: timedelta = timedelta(0)) -> bool:
        """True when the token is expired or will be within ``grace``."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at - grace


class CredentialIntake(BaseModel):
    """Tokens handed over by the OAuth authorization-code exchange."""

    model_config = ConfigDict(extra="forbid")

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    expires_in: int | None = Field(None, gt=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    scopes: str | None = None

    def to_credential(self, tenant_id: str, platform: str, now: datetime | None = None) -> Credential:
        now = now or datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=self.expires_in) if self.expires_in else None
        return Credential(
            tenant_id=tenant_id,
            platform=platform,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=expires_at,
            metadata=self.metadata,
            scopes=self.scopes,
        )


class ConnectionHealth(BaseModel):
    platform: str
    connected: bool
    expired: bool = False
    needs_reconnect: bool = False
    has_refresh_token: bool = False
    expires_at: datetime | None = None
    username: str | None = None
    scopes: list[str] | None = None
    last_published_at: datetime | None = None
    error: str | None = None


class ConnectionSummary(BaseModel):
    total: int
    connected: int
    expired: int
    needs_reconnect: int


class ConnectionReport(BaseModel):
    tenant_id: str
    connectors: list[ConnectionHealth]
    summary: ConnectionSummary
