"""Credential intake and per-tenant connection health."""

import logging
from collections.abc import Callable
from contextlib import nullcontext
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from postflow.db.base import utcnow
from postflow.errors.exceptions import ConflictError, ValidationError
from postflow.models.credential import (
    ConnectionHealth,
    ConnectionReport,
    ConnectionSummary,
    Credential,
    CredentialIntake,
)
from postflow.models.enums import Platform
from postflow.platforms import get_publisher
from postflow.repositories.credential_repo import CredentialRepository
from postflow.repositories.job_repo import JobRepository
from postflow.services.credential_locks import CredentialLocks, CredentialLockTimeout

logger = logging.getLogger(__name__)


class ConnectionService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        locks: CredentialLocks | None = None,
    ):
        self.session = session
        self.clock = clock
        self.locks = locks

    async def store_credential(self, tenant_id: str, platform: str, intake: CredentialIntake) -> Credential:
        """Store tokens produced by the OAuth exchange, replacing any previous ones.

        Holds the credential lock so an in-flight refresh finishes first.
        """
        if platform not in {p.value for p in Platform}:
            raise ValidationError(f"Unknown platform '{platform}'")

        credential = intake.to_credential(tenant_id, platform, now=self.clock())
        lock = self.locks.hold(tenant_id, platform) if self.locks else nullcontext()
        try:
            async with lock:
                await CredentialRepository(self.session).put(credential)
                await self.session.commit()
        except CredentialLockTimeout:
            raise ConflictError(f"{platform} credential is being refreshed, retry shortly")
        logger.info("Stored %s credential for tenant %s", platform, tenant_id)
        return credential

    async def connection_health(self, tenant_id: str) -> ConnectionReport:
        now = self.clock()
        rows = {row.platform: row for row in await CredentialRepository(self.session).list_by_tenant(tenant_id)}
        last_published = await JobRepository(self.session).last_published_by_platform(tenant_id)

        connectors = []
        for platform in Platform:
            row = rows.get(platform.value)
            if row is None:
                connectors.append(ConnectionHealth(platform=platform.value, connected=False))
                continue

            credential = Credential.from_row(row)
            expired = credential.is_expired(now)
            publisher = get_publisher(platform.value)
            can_refresh = bool(credential.refresh_token) and publisher is not None
            connectors.append(
                ConnectionHealth(
                    platform=platform.value,
                    connected=not expired,
                    expired=expired,
                    needs_reconnect=expired and not can_refresh,
                    has_refresh_token=bool(credential.refresh_token),
                    expires_at=credential.expires_at,
                    username=credential.metadata.get("username"),
                    scopes=credential.scopes.split() if credential.scopes else None,
                    last_published_at=last_published.get(platform.value),
                    error="Token expired" if expired else None,
                )
            )

        return ConnectionReport(
            tenant_id=tenant_id,
            connectors=connectors,
            summary=ConnectionSummary(
                total=len(connectors),
                connected=sum(1 for c in connectors if c.connected),
                expired=sum(1 for c in connectors if c.expired),
                needs_reconnect=sum(1 for c in connectors if c.needs_reconnect),
            ),
        )
