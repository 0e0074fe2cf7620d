"""
Error taxonomy. Services raise these; the app factory renders them as
{"success": false, "error": ...} JSON with the matching status code.
"""

from typing import Any, Optional


class ServiceError(Exception):
    status_code: int = 500
    error: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        error: Optional[str] = None,
        extra: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message or error or self.error)
        self.message = message
        if error is not None:
            self.error = error
        self.extra = extra or {}

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.message and self.message != self.error:
            body["message"] = self.message
        body.update(self.extra)
        return body


class BadRequest(ServiceError):
    status_code = 400
    error = "BAD_REQUEST"


class PayloadTooLarge(BadRequest):
    """Declared upload size exceeds MAX_FILE_SIZE. Reported as 400."""

    error = "FILE_TOO_LARGE"

    def __init__(self, file_size: int, max_size: int):
        super().__init__(
            f"File size exceeds {round(max_size / 1024 / 1024)}MB. "
            f"Uploads are limited to {round(max_size / 1024 / 1024)}MB.",
            extra={"fileSize": file_size, "maxSize": max_size},
        )
        self.file_size = file_size
        self.max_size = max_size


class Conflict(ServiceError):
    status_code = 409
    error = "CONFLICT"


class NotFound(ServiceError):
    status_code = 404
    error = "NOT_FOUND"


class DependencyError(ServiceError):
    """Persistent store or pipeline failure."""

    status_code = 500
    error = "DEPENDENCY_ERROR"


class ConfigurationError(DependencyError):
    """Required external configuration (credentials, endpoints) is missing."""

    error = "서비스 설정 오류"

    def to_body(self) -> dict[str, Any]:
        return {"success": False, "error": self.error, "details": self.message, **self.extra}


class UpstreamUnavailable(ServiceError):
    """LLM or embedding provider could not be reached."""

    status_code = 503
    error = "AI 서비스 일시 중단"

    def to_body(self) -> dict[str, Any]:
        return {"success": False, "error": self.error, "details": self.message, **self.extra}
