"""Custom exception classes for the postflow API."""


class PostflowError(Exception):
    """Base exception for postflow."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(PostflowError):
    """Schema or request validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(PostflowError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class ConflictError(PostflowError):
    """Resource state conflict."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFLICT", message, details, status_code=409)
