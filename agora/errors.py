"""Typed failures raised by the action engine and their HTTP mapping."""

from datetime import datetime

from fastapi import HTTPException, status


class AgoraError(Exception):
    """Base exception for business-rule failures."""

    def __init__(self, message: str, error_type: str = "agora_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class NotFoundError(AgoraError):
    """Referenced debate or message is absent or inactive."""

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity.capitalize()} {entity_id} not found", "not_found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidArgumentError(AgoraError):
    """Wrong debate kind, malformed content or option, or a self-reaction."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, "invalid_argument")
        self.field = field


class ConflictError(AgoraError):
    """Duplicate vote or reaction."""

    def __init__(self, message: str):
        super().__init__(message, "conflict")


class RateLimitedError(AgoraError):
    """Cooldown for the action kind has not elapsed yet."""

    def __init__(self, action: str, wait_seconds: int, retry_at: datetime):
        super().__init__(
            f"{action.capitalize()} cooldown active: wait {wait_seconds}s",
            "rate_limited",
        )
        self.action = action
        self.wait_seconds = wait_seconds
        self.retry_at = retry_at


_STATUS_MAP = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "invalid_argument": status.HTTP_400_BAD_REQUEST,
    "conflict": status.HTTP_409_CONFLICT,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
}


def error_payload(error: AgoraError) -> tuple[int, dict, dict[str, str] | None]:
    """Build (status_code, body, headers) for an engine error."""
    status_code = _STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)
    body: dict = {"error": error.error_type, "detail": error.message}
    headers = None
    if isinstance(error, RateLimitedError):
        body["wait_seconds"] = error.wait_seconds
        body["retry_after"] = error.retry_at.isoformat()
        headers = {"Retry-After": str(error.wait_seconds)}
    return status_code, body, headers


def raise_http_exception(error: AgoraError) -> None:
    """Convert an AgoraError to HTTPException."""
    status_code, body, headers = error_payload(error)
    raise HTTPException(status_code=status_code, detail=body, headers=headers)
