"""LinkedIn publisher using the UGC posts API."""

from __future__ import annotations

import httpx

from postflow.models.content import PublishContent
from postflow.models.credential import Credential
from postflow.platforms.base import PublisherAdapter, PublishResult, TokenGrant
from postflow.platforms.config import OAuthClientConfig

API_BASE = "https://api.linkedin.com/v2"
TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"


class LinkedInPublisher(PublisherAdapter):
    platform: str = "linkedin"

    async def publish(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        content: PublishContent,
    ) -> PublishResult:
        author = self.require_metadata(credential, "author_urn", "organization_urn")
        share: dict = {
            "shareCommentary": {"text": content.text},
            "shareMediaCategory": "NONE",
        }
        if content.link:
            share["shareMediaCategory"] = "ARTICLE"
            share["media"] = [{"status": "READY", "originalUrl": content.link}]

        body = {
            "author": author,
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }
        response = await self.send(
            client,
            "POST",
            f"{API_BASE}/ugcPosts",
            json=body,
            headers={
                "Authorization": f"Bearer {credential.access_token}",
                "X-Restli-Protocol-Version": "2.0.0",
            },
        )

        post_id = response.headers.get("x-restli-id")
        if not post_id and response.content:
            post_id = response.json().get("id")
        if not post_id:
            raise self.invalid("LinkedIn response did not include a post id")

        return PublishResult(
            remote_id=post_id,
            url=f"https://www.linkedin.com/feed/update/{post_id}",
            raw={"id": post_id},
        )

    async def refresh_token(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        oauth: OAuthClientConfig,
    ) -> TokenGrant:
        return await self.send_refresh(
            client,
            "POST",
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": credential.refresh_token or "",
                "client_id": oauth.client_id,
                "client_secret": oauth.client_secret,
            },
        )
