"""X (Twitter) publisher using the v2 tweets endpoint."""

from __future__ import annotations

import logging

import httpx

from postflow.models.content import PublishContent
from postflow.models.credential import Credential
from postflow.platforms.base import PublisherAdapter, PublishResult, TokenGrant
from postflow.platforms.config import OAuthClientConfig

logger = logging.getLogger(__name__)

API_BASE = "https://api.twitter.com/2"
TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
MAX_TWEET_LENGTH = 280


class TwitterPublisher(PublisherAdapter):
    """Posts a tweet with the user's OAuth2 bearer token.

    Media attachments need pre-uploaded media ids, which this service does not
    produce, so only the text (plus an optional link) is posted.
    """

    platform: str = "twitter"

    async def publish(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        content: PublishContent,
    ) -> PublishResult:
        text = content.text
        if content.link and content.link not in text:
            text = f"{text} {content.link}"
        if len(text) > MAX_TWEET_LENGTH:
            raise self.invalid(f"tweet text is {len(text)} characters, limit is {MAX_TWEET_LENGTH}")
        if content.media:
            logger.debug("Twitter publish ignores %d media item(s)", len(content.media))

        response = await self.send(
            client,
            "POST",
            f"{API_BASE}/tweets",
            json={"text": text},
            headers={"Authorization": f"Bearer {credential.access_token}"},
        )
        tweet = response.json().get("data") or {}
        tweet_id = tweet.get("id")
        if not tweet_id:
            raise self.invalid("tweet response did not include an id")

        username = credential.metadata.get("username") or "i/web"
        return PublishResult(
            remote_id=str(tweet_id),
            url=f"https://twitter.com/{username}/status/{tweet_id}",
            raw=tweet,
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
            },
            auth=oauth.basic_auth,
        )
