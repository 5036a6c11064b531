"""
Typed failures raised inside the matching pipeline and helpers to turn them into
caller-facing error info.
"""
import logging
from typing import Any

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error."""
    code = "server_error"
    retryable = False

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class EmptyContent(AppError):
    """Source text was empty or whitespace; nothing to embed."""
    code = "empty_content"

    def __init__(self, message: str = "No content to embed", details: dict | None = None):
        super().__init__(message, status_code=400, details=details)


class ProviderConfigError(AppError):
    """Embedding provider credentials or endpoint are missing."""
    code = "provider_config"

    def __init__(self, message: str = "Embedding provider is not configured", details: dict | None = None):
        super().__init__(message, status_code=500, details=details)


class ProviderError(AppError):
    """Embedding provider answered with a non-2xx status or could not be reached."""
    code = "provider_error"
    retryable = True

    def __init__(self, *, status_code: int | None, body: str = "", message: str | None = None):
        self.provider_status = status_code
        self.body = body
        msg = message or f"Embedding provider error: {status_code} - {body}"
        super().__init__(msg, status_code=502, details={"provider_status": status_code, "body": body})


class MalformedResponse(AppError):
    """Embedding provider answered 2xx but without a usable vector."""
    code = "malformed_response"

    def __init__(self, message: str = "Invalid embedding response from provider", details: dict | None = None):
        super().__init__(message, status_code=502, details=details)


class DimensionMismatch(AppError):
    """Two vectors that should share a dimension do not."""
    code = "dimension_mismatch"

    def __init__(self, left: int, right: int):
        super().__init__(
            f"Vectors must have the same dimension ({left} != {right})",
            status_code=500,
            details={"left": left, "right": right},
        )


class PersistenceError(AppError):
    """An upsert or read against the match store failed."""
    code = "persistence_error"
    retryable = True

    def __init__(self, message: str = "Database operation failed", details: dict | None = None):
        super().__init__(message, status_code=503, details=details)


class NotificationError(AppError):
    """The notification collaborator rejected or failed a hand-off."""
    code = "notification_error"
    retryable = True

    def __init__(self, message: str = "Notification hand-off failed", details: dict | None = None):
        super().__init__(message, status_code=502, details=details)


# User-friendly error messages
ERROR_MESSAGES = {
    "empty_content": "There is no text to analyse. Please add a description or upload a resume.",
    "provider_config": "Matching is not configured on this server.",
    "provider_error": "The embedding service is temporarily unavailable. Please try again shortly.",
    "malformed_response": "The embedding service returned an unexpected response.",
    "dimension_mismatch": "Stored embeddings are incompatible with the current model.",
    "persistence_error": "Database connection issue. Please try again later.",
    "notification_error": "We could not queue a notification. It will be retried.",
    "server_error": "Something went wrong on our end. Please try again later.",
}


def get_error_message(error_key: str, default: str | None = None) -> str:
    """Get a user-friendly error message."""
    return ERROR_MESSAGES.get(error_key, default or ERROR_MESSAGES["server_error"])


def error_info(error: Exception) -> dict[str, Any]:
    """Flatten an exception into the fields carried by a failed outcome."""
    if isinstance(error, AppError):
        return {
            "code": error.code,
            "message": error.message,
            "retryable": error.retryable,
            "status_code": error.status_code,
            "details": dict(error.details),
        }
    logger.exception("Unexpected error: %s", error)
    return {
        "code": "server_error",
        "message": get_error_message("server_error"),
        "retryable": False,
        "status_code": 500,
        "details": {"type": type(error).__name__},
    }
