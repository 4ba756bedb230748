"""Publish worker: valid credential, then one platform publish call."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from postflow.db.models.job import JobRow
from postflow.models.content import PublishContent
from postflow.models.credential import Credential
from postflow.models.enums import ErrorClass, ErrorCode
from postflow.platforms.base import PublisherAdapter, PublishError, PublishResult, RefreshError
from postflow.repositories.credential_repo import CredentialRepository
from postflow.services.credential_locks import CredentialLockTimeout
from postflow.workers.base import BaseWorker, JobFailure

if TYPE_CHECKING:
    from postflow.workers.executor import JobExecutor

logger = logging.getLogger(__name__)

_REFRESH_WRITE_ATTEMPTS = 2


def _publish_failure(exc: PublishError) -> JobFailure:
    if exc.error_class == ErrorClass.TRANSIENT:
        return JobFailure(str(exc), ErrorCode.TRANSIENT, ErrorClass.TRANSIENT)
    if exc.error_class == ErrorClass.AUTH:
        return JobFailure(str(exc), ErrorCode.RECONNECT_REQUIRED, ErrorClass.PERMANENT)
    return JobFailure(str(exc), ErrorCode.CONTENT_INVALID, ErrorClass.PERMANENT)


def _refresh_failure(exc: RefreshError) -> JobFailure:
    if exc.retryable:
        return JobFailure(f"Token refresh failed: {exc.reason}", ErrorCode.AUTH_REFRESH_FAILED, ErrorClass.AUTH)
    return JobFailure(
        f"Account must be reconnected: {exc.reason}",
        ErrorCode.RECONNECT_REQUIRED,
        ErrorClass.PERMANENT,
    )


class PublishWorker(BaseWorker):
    """Publishes a job's content to its platform on behalf of its tenant."""

    async def process(self, job: JobRow, executor: JobExecutor) -> dict:
        publisher = executor.publisher_for(job.platform)
        if publisher is None:
            raise JobFailure(
                f"Publishing to '{job.platform}' is not supported",
                ErrorCode.UNSUPPORTED_PLATFORM,
                ErrorClass.PERMANENT,
            )

        try:
            content = PublishContent.model_validate(job.payload or {})
        except ValidationError as exc:
            raise JobFailure(f"Invalid publish payload: {exc}", ErrorCode.INVALID_PAYLOAD, ErrorClass.PERMANENT)

        credential, refreshed = await self.valid_credential(job, publisher, executor)
        try:
            result = await publisher.publish(executor.http_client, credential, content)
        except PublishError as exc:
            if exc.error_class != ErrorClass.AUTH:
                raise _publish_failure(exc)
            result = await self._retry_after_auth_error(job, publisher, executor, credential, content, refreshed, exc)

        logger.info("Published job %s to %s as %s", job.job_id, job.platform, result.remote_id)
        return result.as_dict()

    async def _retry_after_auth_error(
        self,
        job: JobRow,
        publisher: PublisherAdapter,
        executor: JobExecutor,
        credential: Credential,
        content: PublishContent,
        refreshed: bool,
        error: PublishError,
    ) -> PublishResult:
        """One forced refresh and one more publish call after the platform rejected the token."""
        if refreshed:
            raise JobFailure(
                f"Freshly refreshed token was rejected: {error}",
                ErrorCode.RECONNECT_REQUIRED,
                ErrorClass.PERMANENT,
            )
        if not credential.refresh_token and not publisher.refresh_with_access_token:
            raise JobFailure(
                f"Token rejected and no refresh token is stored: {error}",
                ErrorCode.RECONNECT_REQUIRED,
                ErrorClass.PERMANENT,
            )

        logger.info("Job %s: %s rejected the token, forcing a refresh", job.job_id, job.platform)
        credential, _ = await self.valid_credential(job, publisher, executor, force=True)
        try:
            return await publisher.publish(executor.http_client, credential, content)
        except PublishError as exc:
            raise _publish_failure(exc)

    async def valid_credential(
        self,
        job: JobRow,
        publisher: PublisherAdapter,
        executor: JobExecutor,
        force: bool = False,
    ) -> tuple[Credential, bool]:
        """Read, refresh if needed, and persist the credential under its lock.

        A refreshed token is only stored over the tokens it was refreshed from.
        If the credential was replaced while the refresh was in flight, the
        refreshed token is discarded and the stored credential is used instead.
        """
        try:
            async with executor.credential_locks.hold(job.tenant_id, job.platform):
                for _ in range(_REFRESH_WRITE_ATTEMPTS):
                    credential = await self._load_credential(job, executor)
                    try:
                        outcome = await executor.token_refresher.ensure_valid(
                            executor.http_client, credential, publisher, force=force
                        )
                    except RefreshError as exc:
                        logger.warning("Token refresh for %s/%s failed: %s", job.tenant_id, job.platform, exc.reason)
                        raise _refresh_failure(exc)

                    if not outcome.refreshed:
                        return outcome.credential, False

                    async with executor.session_factory() as session:
                        stored = await CredentialRepository(session).replace_refreshed(
                            credential, outcome.credential, executor.clock()
                        )
                        await session.commit()
                    if stored:
                        logger.info("Stored refreshed %s token for tenant %s", job.platform, job.tenant_id)
                        return outcome.credential, True

                    logger.warning(
                        "%s credential for tenant %s changed during refresh, discarding the refreshed token",
                        job.platform,
                        job.tenant_id,
                    )
                    # The replacement has not been rejected by the platform
                    force = False
        except CredentialLockTimeout as exc:
            raise JobFailure(str(exc), ErrorCode.TRANSIENT, ErrorClass.TRANSIENT)

        raise JobFailure(
            f"{job.platform} credential kept changing during refresh",
            ErrorCode.TRANSIENT,
            ErrorClass.TRANSIENT,
        )

    async def _load_credential(self, job: JobRow, executor: JobExecutor) -> Credential:
        async with executor.session_factory() as session:
            row = await CredentialRepository(session).get(job.tenant_id, job.platform)
            credential = Credential.from_row(row) if row else None
        if credential is None:
            raise JobFailure(
                f"No {job.platform} account connected for tenant {job.tenant_id}",
                ErrorCode.CREDENTIAL_MISSING,
                ErrorClass.PERMANENT,
            )
        return credential
