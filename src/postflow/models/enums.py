"""String enums shared by the job pipeline."""

from enum import StrEnum


class JobKind(StrEnum):
    PUBLISH = "publish"
    AI_GENERATE = "ai_generate"
    IMAGE_GENERATE = "image_generate"


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GroupStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Platform(StrEnum):
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"
    TELEGRAM = "telegram"
    DISCORD = "discord"


class ErrorClass(StrEnum):
    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"


class ErrorCode(StrEnum):
    TRANSIENT = "transient"
    AUTH_REFRESH_FAILED = "auth_refresh_failed"
    RECONNECT_REQUIRED = "reconnect_required"
    CONTENT_INVALID = "content_invalid"
    INVALID_PAYLOAD = "invalid_payload"
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    CREDENTIAL_MISSING = "credential_missing"
    AI_UNAVAILABLE = "ai_unavailable"
    LEASE_EXPIRED = "lease_expired"
    CANCELLED = "cancelled"
