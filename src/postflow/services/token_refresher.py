"""Shared token refresh logic, parameterized by platform publisher."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx

from postflow.config import settings
from postflow.db.base import utcnow
from postflow.models.credential import Credential
from postflow.platforms import get_publisher
from postflow.platforms.base import PublisherAdapter, RefreshError
from postflow.platforms.config import OAuthClientConfig, oauth_config_for

logger = logging.getLogger(__name__)

NO_REFRESH_TOKEN = "no_refresh_token"


@dataclass
class RefreshOutcome:
    credential: Credential
    refreshed: bool


class TokenRefresher:
    """Returns a credential that is valid for at least the grace period.

    The refresher never persists anything; callers must write a refreshed
    credential back to the credential store before using it.
    """

    def __init__(
        self,
        grace_seconds: int | None = None,
        oauth_lookup: Callable[[str], OAuthClientConfig] = oauth_config_for,
        clock: Callable[[], datetime] = utcnow,
    ):
        seconds = settings.token_refresh_grace_seconds if grace_seconds is None else grace_seconds
        self.grace = timedelta(seconds=seconds)
        self.oauth_lookup = oauth_lookup
        self.clock = clock

    async def ensure_valid(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        publisher: PublisherAdapter | None = None,
        *,
        force: bool = False,
    ) -> RefreshOutcome:
        """Refresh the credential if it is expired or about to expire.

        Raises:
            RefreshError: ``no_refresh_token`` when no recovery path exists,
                otherwise the platform's refresh failure.
        """
        now = self.clock()
        if not force and not credential.is_expired(now, self.grace):
            return RefreshOutcome(credential=credential, refreshed=False)

        publisher = publisher or get_publisher(credential.platform)
        if publisher is None:
            raise RefreshError(f"no token endpoint known for platform '{credential.platform}'")

        can_use_access_token = publisher.refresh_with_access_token and not credential.is_expired(now)
        if not credential.refresh_token and not can_use_access_token:
            raise RefreshError(NO_REFRESH_TOKEN, retryable=False)

        logger.info(
            "Refreshing %s token for tenant %s (forced=%s)",
            credential.platform,
            credential.tenant_id,
            force,
        )
        grant = await publisher.refresh_token(client, credential, self.oauth_lookup(credential.platform))

        expires_at = now + timedelta(seconds=grant.expires_in) if grant.expires_in else None
        refreshed = credential.model_copy(
            update={
                "access_token": grant.access_token,
                "refresh_token": grant.refresh_token or credential.refresh_token,
                "expires_at": expires_at,
            }
        )
        return RefreshOutcome(credential=refreshed, refreshed=True)
