"""Abstract base class and result types for platform publishers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from postflow.models.content import PublishContent
from postflow.models.credential import Credential
from postflow.models.enums import ErrorClass
from postflow.platforms.config import OAuthClientConfig

logger = logging.getLogger(__name__)

_MAX_ERROR_BODY = 500


def classify_status(http_status: int | None) -> ErrorClass:
    """Map an HTTP status from a platform call to an error class.

    ``None`` means the request never reached the platform because the content
    or account data failed local validation.
    """
    if http_status is None:
        return ErrorClass.PERMANENT
    if http_status in (401, 403):
        return ErrorClass.AUTH
    if http_status == 429 or http_status >= 500:
        return ErrorClass.TRANSIENT
    return ErrorClass.PERMANENT


@dataclass
class PublishResult:
    remote_id: str
    url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"remote_id": self.remote_id, "url": self.url, "raw": self.raw}


@dataclass
class TokenGrant:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


class PublishError(Exception):
    """A publish call failed; ``error_class`` drives retry decisions."""

    def __init__(
        self,
        platform: str,
        message: str,
        http_status: int | None = None,
        error_class: ErrorClass | None = None,
    ):
        self.platform = platform
        self.message = message
        self.http_status = http_status
        self.error_class = error_class or classify_status(http_status)
        super().__init__(message)

    def __str__(self) -> str:
        if self.http_status is not None:
            return f"{self.platform} publish failed (HTTP {self.http_status}): {self.message}"
        return f"{self.platform} publish failed: {self.message}"


class RefreshError(Exception):
    """A token refresh could not produce a usable credential."""

    def __init__(self, reason: str, retryable: bool = False, status_code: int | None = None):
        self.reason = reason
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(reason)


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:_MAX_ERROR_BODY]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])[:_MAX_ERROR_BODY]
        for key in ("detail", "message", "error_description", "title"):
            if body.get(key):
                return str(body[key])[:_MAX_ERROR_BODY]
        if isinstance(error, str):
            return error[:_MAX_ERROR_BODY]
    return response.text[:_MAX_ERROR_BODY]


class PublisherAdapter(ABC):
    """Publishes content to one platform and refreshes its OAuth tokens."""

    platform: str = "unknown"

    # True when the platform refreshes with the current, unexpired access token
    # instead of a separate refresh token.
    refresh_with_access_token: bool = False

    @abstractmethod
    async def publish(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        content: PublishContent,
    ) -> PublishResult:
        """Publish content and return the remote post reference.

        Raises:
            PublishError: on any platform or validation failure.
        """
        ...

    @abstractmethod
    async def refresh_token(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        oauth: OAuthClientConfig,
    ) -> TokenGrant:
        """Exchange the stored grant for a new access token.

        Raises:
            RefreshError: when the token endpoint fails or rejects the grant.
        """
        ...

    # ------------------------------------------------------------------
    # Shared HTTP helpers
    # ------------------------------------------------------------------

    def invalid(self, message: str) -> PublishError:
        """Local validation failure; never retried."""
        return PublishError(self.platform, message, http_status=None, error_class=ErrorClass.PERMANENT)

    def require_metadata(self, credential: Credential, *keys: str) -> str:
        for key in keys:
            value = credential.metadata.get(key)
            if value:
                return str(value)
        raise self.invalid(f"credential is missing metadata.{' or metadata.'.join(keys)}")

    async def send(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue a platform API request, raising PublishError on failure."""
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise PublishError(self.platform, f"request timed out: {exc}", error_class=ErrorClass.TRANSIENT) from exc
        except httpx.TransportError as exc:
            raise PublishError(self.platform, f"network error: {exc}", error_class=ErrorClass.TRANSIENT) from exc

        if response.is_success:
            return response

        message = _error_text(response)
        logger.warning("%s API returned %s for %s: %s", self.platform, response.status_code, url, message)
        raise PublishError(self.platform, message, http_status=response.status_code)

    async def send_refresh(self, client: httpx.AsyncClient, method: str, url: str, **kwargs) -> TokenGrant:
        """Call a token endpoint and parse the standard OAuth2 token response."""
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RefreshError(f"{self.platform} token endpoint timed out", retryable=True) from exc
        except httpx.TransportError as exc:
            raise RefreshError(f"{self.platform} token endpoint unreachable: {exc}", retryable=True) from exc

        if not response.is_success:
            retryable = classify_status(response.status_code) == ErrorClass.TRANSIENT
            raise RefreshError(
                f"{self.platform} token refresh failed (HTTP {response.status_code}): {_error_text(response)}",
                retryable=retryable,
                status_code=response.status_code,
            )

        data = response.json()
        access_token = data.get("access_token")
        if not access_token:
            raise RefreshError(f"{self.platform} token response did not include an access_token")
        expires_in = data.get("expires_in")
        return TokenGrant(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_in=int(expires_in) if expires_in else None,
        )
