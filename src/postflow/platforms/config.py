"""OAuth client configuration for platform token endpoints."""

from pydantic import BaseModel, ConfigDict

from postflow.config import Settings, settings as default_settings


class OAuthClientConfig(BaseModel):
    """Client credentials the service presents to a platform's token endpoint."""

    model_config = ConfigDict(extra="forbid")

    client_id: str = ""
    client_secret: str = ""

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        if self.client_id and self.client_secret:
            return (self.client_id, self.client_secret)
        return None


def oauth_config_for(platform: str, settings: Settings | None = None) -> OAuthClientConfig:
    """Build the OAuth client config for a platform from settings."""
    s = settings or default_settings
    if platform == "twitter":
        return OAuthClientConfig(client_id=s.twitter_client_id, client_secret=s.twitter_client_secret)
    if platform == "linkedin":
        return OAuthClientConfig(client_id=s.linkedin_client_id, client_secret=s.linkedin_client_secret)
    if platform in ("facebook", "instagram"):
        return OAuthClientConfig(client_id=s.facebook_app_id, client_secret=s.facebook_app_secret)
    return OAuthClientConfig()
