"""Platform publisher request shapes and error classification."""

import json

import httpx
import pytest

from postflow.models.content import PublishContent
from postflow.models.credential import Credential
from postflow.models.enums import ErrorClass
from postflow.platforms import get_publisher
from postflow.platforms.base import PublishError, classify_status
from postflow.platforms.facebook import FacebookPublisher
from postflow.platforms.instagram import InstagramPublisher
from postflow.platforms.linkedin import LinkedInPublisher
from postflow.platforms.twitter import TwitterPublisher


def _credential(platform, **metadata):
    return Credential(tenant_id="tenant_a", platform=platform, access_token="tok", metadata=metadata)


class Recorder:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


async def _publish(publisher, recorder, credential, content):
    async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
        return await publisher.publish(client, credential, content)


def test_classify_status():
    assert classify_status(None) == ErrorClass.PERMANENT
    assert classify_status(400) == ErrorClass.PERMANENT
    assert classify_status(401) == ErrorClass.AUTH
    assert classify_status(403) == ErrorClass.AUTH
    assert classify_status(429) == ErrorClass.TRANSIENT
    assert classify_status(502) == ErrorClass.TRANSIENT


def test_registry_knows_supported_platforms():
    assert isinstance(get_publisher("twitter"), TwitterPublisher)
    assert isinstance(get_publisher("instagram"), InstagramPublisher)
    assert get_publisher("telegram") is None


@pytest.mark.asyncio
async def test_twitter_posts_text_with_link():
    recorder = Recorder(httpx.Response(201, json={"data": {"id": "42", "text": "hi"}}))
    result = await _publish(
        TwitterPublisher(),
        recorder,
        _credential("twitter", username="acme"),
        PublishContent(text="Launch day", link="https://acme.test/launch"),
    )

    request = recorder.requests[0]
    assert request.url == "https://api.twitter.com/2/tweets"
    assert request.headers["authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"text": "Launch day https://acme.test/launch"}
    assert result.remote_id == "42"
    assert result.url == "https://twitter.com/acme/status/42"


@pytest.mark.asyncio
async def test_twitter_rejects_overlong_text_without_calling_api():
    recorder = Recorder()
    with pytest.raises(PublishError) as exc_info:
        await _publish(TwitterPublisher(), recorder, _credential("twitter"), PublishContent(text="x" * 281))

    assert exc_info.value.error_class == ErrorClass.PERMANENT
    assert recorder.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error_class",
    [(429, ErrorClass.TRANSIENT), (503, ErrorClass.TRANSIENT), (401, ErrorClass.AUTH), (400, ErrorClass.PERMANENT)],
)
async def test_http_errors_are_classified(status, error_class):
    recorder = Recorder(httpx.Response(status, json={"detail": "nope"}))
    with pytest.raises(PublishError) as exc_info:
        await _publish(TwitterPublisher(), recorder, _credential("twitter"), PublishContent(text="hi"))

    assert exc_info.value.error_class == error_class
    assert exc_info.value.http_status == status
    assert exc_info.value.message == "nope"


@pytest.mark.asyncio
async def test_timeout_is_transient():
    recorder = Recorder(httpx.ReadTimeout("timed out"))
    with pytest.raises(PublishError) as exc_info:
        await _publish(TwitterPublisher(), recorder, _credential("twitter"), PublishContent(text="hi"))

    assert exc_info.value.error_class == ErrorClass.TRANSIENT
    assert exc_info.value.http_status is None


@pytest.mark.asyncio
async def test_linkedin_reads_post_id_from_header():
    recorder = Recorder(httpx.Response(201, headers={"x-restli-id": "urn:li:share:7"}))
    result = await _publish(
        LinkedInPublisher(),
        recorder,
        _credential("linkedin", author_urn="urn:li:person:abc"),
        PublishContent(text="Hiring", link="https://acme.test/jobs"),
    )

    body = json.loads(recorder.requests[0].content)
    assert body["author"] == "urn:li:person:abc"
    share = body["specificContent"]["com.linkedin.ugc.ShareContent"]
    assert share["shareMediaCategory"] == "ARTICLE"
    assert result.remote_id == "urn:li:share:7"


@pytest.mark.asyncio
async def test_linkedin_requires_author():
    with pytest.raises(PublishError) as exc_info:
        await _publish(LinkedInPublisher(), Recorder(), _credential("linkedin"), PublishContent(text="hi"))
    assert exc_info.value.error_class == ErrorClass.PERMANENT


@pytest.mark.asyncio
async def test_facebook_posts_to_page_feed():
    recorder = Recorder(httpx.Response(200, json={"id": "123_456"}))
    result = await _publish(
        FacebookPublisher(),
        recorder,
        _credential("facebook", page_id="123"),
        PublishContent(text="Open today"),
    )

    request = recorder.requests[0]
    assert request.url.path == "/v19.0/123/feed"
    assert request.url.params["access_token"] == "tok"
    assert result.remote_id == "123_456"


@pytest.mark.asyncio
async def test_instagram_creates_container_then_publishes():
    recorder = Recorder(
        httpx.Response(200, json={"id": "container_1"}),
        httpx.Response(200, json={"id": "media_9"}),
    )
    result = await _publish(
        InstagramPublisher(),
        recorder,
        _credential("instagram", ig_user_id="17841"),
        PublishContent(text="New drop", media=[{"url": "https://cdn.acme.test/a.jpg", "type": "image"}]),
    )

    first, second = recorder.requests
    assert first.url.path == "/v19.0/17841/media"
    assert b"image_url=" in first.content
    assert second.url.path == "/v19.0/17841/media_publish"
    assert b"creation_id=container_1" in second.content
    assert result.remote_id == "media_9"
    assert result.raw["container_id"] == "container_1"


@pytest.mark.asyncio
async def test_instagram_requires_image():
    recorder = Recorder()
    with pytest.raises(PublishError) as exc_info:
        await _publish(
            InstagramPublisher(),
            recorder,
            _credential("instagram", ig_user_id="17841"),
            PublishContent(text="No picture"),
        )

    assert exc_info.value.error_class == ErrorClass.PERMANENT
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_instagram_publish_phase_failure_surfaces_once():
    recorder = Recorder(
        httpx.Response(200, json={"id": "container_1"}),
        httpx.Response(500, json={"error": {"message": "media not ready"}}),
    )
    with pytest.raises(PublishError) as exc_info:
        await _publish(
            InstagramPublisher(),
            recorder,
            _credential("instagram", ig_user_id="17841"),
            PublishContent(text="New drop", media=[{"url": "https://cdn.acme.test/a.jpg"}]),
        )

    assert exc_info.value.error_class == ErrorClass.TRANSIENT
    assert exc_info.value.message == "media not ready"
