"""Facebook Page publisher using the Graph API feed edge."""

from __future__ import annotations

import httpx

from postflow.models.content import PublishContent
from postflow.models.credential import Credential
from postflow.platforms.base import PublisherAdapter, PublishResult, TokenGrant
from postflow.platforms.config import OAuthClientConfig

GRAPH_BASE = "https://graph.facebook.com/v19.0"


class FacebookPublisher(PublisherAdapter):
    """Posts to a Page feed with a Page access token.

    Facebook has no refresh-token grant; the stored refresh token is a
    long-lived token exchanged through ``fb_exchange_token``.
    """

    platform: str = "facebook"

    async def publish(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        content: PublishContent,
    ) -> PublishResult:
        page_id = self.require_metadata(credential, "page_id")
        form = {"message": content.text}
        if content.link:
            form["link"] = content.link

        response = await self.send(
            client,
            "POST",
            f"{GRAPH_BASE}/{page_id}/feed",
            data=form,
            params={"access_token": credential.access_token},
        )
        body = response.json()
        post_id = body.get("id")
        if not post_id:
            raise self.invalid("Graph API response did not include a post id")

        return PublishResult(remote_id=post_id, url=f"https://www.facebook.com/{post_id}", raw=body)

    async def refresh_token(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        oauth: OAuthClientConfig,
    ) -> TokenGrant:
        grant = await self.send_refresh(
            client,
            "GET",
            f"{GRAPH_BASE}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": oauth.client_id,
                "client_secret": oauth.client_secret,
                "fb_exchange_token": credential.refresh_token or "",
            },
        )
        # Keep the long-lived exchange token for the next refresh
        grant.refresh_token = grant.refresh_token or credential.refresh_token
        return grant
