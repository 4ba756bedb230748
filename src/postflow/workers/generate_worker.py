"""AI generation worker: text or image content from the AI collaborator."""

from __future__ import annotations

from typing import TYPE_CHECKING

from postflow.db.models.job import JobRow
from postflow.models.enums import ErrorClass, ErrorCode
from postflow.services.ai_client import AIServiceError
from postflow.workers.base import BaseWorker, JobFailure

if TYPE_CHECKING:
    from postflow.workers.executor import JobExecutor


class GenerateContentWorker(BaseWorker):
    async def process(self, job: JobRow, executor: JobExecutor) -> dict:
        ai_client = executor.ai_client
        if ai_client is None or not ai_client.configured:
            raise JobFailure("AI service is not configured", ErrorCode.AI_UNAVAILABLE, ErrorClass.PERMANENT)

        try:
            return await ai_client.invoke(executor.http_client, job.kind, job.payload or {})
        except AIServiceError as exc:
            if exc.error_class == ErrorClass.PERMANENT:
                raise JobFailure(exc.message, ErrorCode.CONTENT_INVALID, ErrorClass.PERMANENT)
            raise JobFailure(exc.message, ErrorCode.TRANSIENT, ErrorClass.TRANSIENT)
