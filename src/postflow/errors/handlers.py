"""FastAPI exception handlers producing the standard ErrorResponse."""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from postflow.errors.exceptions import PostflowError, ValidationError
from postflow.models.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def _error_response(request: Request, exc: PostflowError) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", "unknown")
    error_response = ErrorResponse(
        error=ErrorDetail(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=trace_id,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers on the FastAPI app."""

    @app.exception_handler(PostflowError)
    async def postflow_error_handler(request: Request, exc: PostflowError):
        if exc.status_code >= 500:
            logger.error("Request failed: %s %s (%s)", request.method, request.url.path, exc.message)
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = jsonable_encoder(exc.errors(), exclude={"ctx", "url"})
        return _error_response(request, ValidationError("Request body failed validation", details=details))
