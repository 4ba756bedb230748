"""Instagram publisher: container creation followed by media_publish."""

from __future__ import annotations

import logging

import httpx

from postflow.models.content import PublishContent
from postflow.models.credential import Credential
from postflow.platforms.base import PublisherAdapter, PublishResult, TokenGrant
from postflow.platforms.config import OAuthClientConfig

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.facebook.com/v19.0"
REFRESH_URL = "https://graph.instagram.com/refresh_access_token"


class InstagramPublisher(PublisherAdapter):
    """Publishes a single-image post for an IG Business/Creator account.

    Both phases run inside one ``publish`` call. A failure in either phase
    surfaces as a single PublishError; an orphaned container expires on the
    platform side and is never reused.
    """

    platform: str = "instagram"
    refresh_with_access_token: bool = True

    async def publish(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        content: PublishContent,
    ) -> PublishResult:
        ig_user_id = self.require_metadata(credential, "ig_user_id")
        images = content.images
        if not images:
            raise self.invalid("Instagram posts require an image")

        container_id = await self._create_container(client, credential, ig_user_id, images[0].url, content.text)
        logger.debug("Instagram container %s created for %s", container_id, ig_user_id)

        response = await self.send(
            client,
            "POST",
            f"{GRAPH_BASE}/{ig_user_id}/media_publish",
            data={"creation_id": container_id},
            params={"access_token": credential.access_token},
        )
        media_id = response.json().get("id")
        if not media_id:
            raise self.invalid("media_publish response did not include a media id")

        return PublishResult(
            remote_id=str(media_id),
            url=f"https://www.instagram.com/p/{media_id}",
            raw={"id": media_id, "container_id": container_id},
        )

    async def _create_container(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        ig_user_id: str,
        image_url: str,
        caption: str,
    ) -> str:
        response = await self.send(
            client,
            "POST",
            f"{GRAPH_BASE}/{ig_user_id}/media",
            data={"image_url": image_url, "caption": caption},
            params={"access_token": credential.access_token},
        )
        container_id = response.json().get("id")
        if not container_id:
            raise self.invalid("media container response did not include an id")
        return str(container_id)

    async def refresh_token(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        oauth: OAuthClientConfig,
    ) -> TokenGrant:
        return await self.send_refresh(
            client,
            "GET",
            REFRESH_URL,
            params={"grant_type": "ig_refresh_token", "access_token": credential.access_token},
        )
