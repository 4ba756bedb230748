"""Client for the AI content collaborator (text and image generation)."""

import logging

import httpx

from postflow.models.enums import ErrorClass, JobKind
from postflow.platforms.base import classify_status

logger = logging.getLogger(__name__)

_PATHS = {
    JobKind.AI_GENERATE: "/generate",
    JobKind.IMAGE_GENERATE: "/images/generate",
}


class AIServiceError(Exception):
    def __init__(self, message: str, http_status: int | None = None, error_class: ErrorClass | None = None):
        self.message = message
        self.http_status = http_status
        self.error_class = error_class or classify_status(http_status)
        super().__init__(message)


class AIContentClient:
    """Opaque ``invoke(payload) -> result`` over HTTP."""

    def __init__(self, base_url: str | None, api_key: str | None = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def invoke(self, client: httpx.AsyncClient, kind: str, payload: dict) -> dict:
        path = _PATHS.get(JobKind(kind))
        if not self.base_url or path is None:
            raise AIServiceError("AI service is not configured", error_class=ErrorClass.PERMANENT)

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            response = await client.post(f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise AIServiceError(f"AI service timed out: {exc}", error_class=ErrorClass.TRANSIENT) from exc
        except httpx.TransportError as exc:
            raise AIServiceError(f"AI service unreachable: {exc}", error_class=ErrorClass.TRANSIENT) from exc

        if not response.is_success:
            logger.warning("AI service returned %s for %s", response.status_code, kind)
            raise AIServiceError(
                f"AI {kind} failed (HTTP {response.status_code}): {response.text[:500]}",
                http_status=response.status_code,
            )
        return response.json()
