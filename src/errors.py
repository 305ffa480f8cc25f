"""
Upload Errors
Exception hierarchy shared by every pipeline step. Each error knows its HTTP status
and how to render itself as the JSON body the frontend expects.
"""

from typing import Any, Dict, Optional


class TonieUploaderError(Exception):
    """Base exception for all pipeline failures."""
    def __init__(
        self,
        message: str,
        error_type: str = "internal",
        http_status: int = 500,
        details: Any = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize TonieUploaderError.

        Args:
            message: Short summary shown as `error`
            error_type: Machine-readable error classification
            http_status: HTTP status code returned to the caller
            details: Longer explanation (string or list of strings)
            extra: Additional diagnostic fields merged into the response body
        """
        self.message = message
        self.error_type = error_type
        self.http_status = http_status
        self.details = details
        self.extra = extra or {}
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        body.update(self.extra)
        return body


class AuthorizationDenied(TonieUploaderError):
    """Shared app password missing or wrong."""
    def __init__(self, message: str = "Invalid app password"):
        super().__init__(message, error_type="authorization_denied", http_status=401)


class UpstreamAuthFailed(TonieUploaderError):
    """Service-account login against the Tonie identity provider failed."""
    def __init__(self, details: str, upstream_status: Optional[int] = None):
        super().__init__(
            "Failed to authenticate with Tonie API",
            error_type="upstream_auth_failed",
            http_status=401,
            details=details,
        )
        self.upstream_status = upstream_status


class MissingFields(TonieUploaderError):
    """Required request fields are absent."""
    def __init__(self, message: str, details: Any = None, debug: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            error_type="missing_fields",
            http_status=400,
            details=details,
            extra={"debug": debug} if debug is not None else None,
        )


class ValidationFailed(TonieUploaderError):
    """Audio payload broke one or more upload rules."""
    def __init__(self, violations: list, message: str = "File validation failed"):
        super().__init__(
            message,
            error_type="validation_failed",
            http_status=400,
            details=list(violations),
        )
        self.violations = list(violations)


class DecodeFailed(TonieUploaderError):
    """Inbound multipart body could not be parsed."""
    def __init__(self, details: str):
        super().__init__(
            "Failed to parse multipart data",
            error_type="decode_failed",
            http_status=400,
            details=details,
        )


class InvalidContentType(TonieUploaderError):
    """Device upload did not arrive as multipart/form-data."""
    def __init__(self, message: str = "Invalid content type. Expected multipart/form-data"):
        super().__init__(message, error_type="invalid_content_type", http_status=400)


class InvalidSourceUrl(TonieUploaderError):
    """Remote audio URL is not a recognised video URL."""
    def __init__(self, details: str = "Invalid YouTube URL format"):
        super().__init__(
            "Invalid YouTube URL",
            error_type="invalid_source_url",
            http_status=400,
            details=details,
        )


class SourceUnavailable(TonieUploaderError):
    """Remote audio metadata or stream could not be obtained."""
    def __init__(self, details: str, message: str = "Failed to get video information"):
        super().__init__(
            message,
            error_type="source_unavailable",
            http_status=400,
            details=details,
        )


class DownloadFailed(SourceUnavailable):
    """Streaming the remote audio track failed."""
    def __init__(self, details: str):
        super().__init__(details, message="Failed to download YouTube audio")


class DownloadTimeout(DownloadFailed):
    """Remote download exceeded its wall-clock deadline."""


class DownloadTooLarge(DownloadFailed):
    """Remote download exceeded its byte ceiling."""


class Forbidden(DownloadFailed):
    """Streaming source answered 403."""


class NotFound(DownloadFailed):
    """Streaming source answered 404."""


class UpstreamApiFailed(TonieUploaderError):
    """A Tonie API call other than login failed."""
    def __init__(
        self,
        details: str,
        http_status: Optional[int] = None,
        path: Optional[str] = None,
        message: str = "Tonie API request failed",
        debug: Optional[Dict[str, Any]] = None,
    ):
        extra: Dict[str, Any] = {}
        if path is not None:
            extra["path"] = path
        if debug is not None:
            extra["debug"] = debug
        super().__init__(
            message,
            error_type="upstream_api_failed",
            http_status=http_status or 500,
            details=details,
            extra=extra,
        )
        self.upstream_status = http_status
        self.path = path

    def with_context(self, message: str, debug: Optional[Dict[str, Any]] = None) -> "UpstreamApiFailed":
        """Re-label this failure for the pipeline step that hit it."""
        return UpstreamApiFailed(
            self.details,
            http_status=self.upstream_status,
            path=self.path,
            message=message,
            debug=debug,
        )


class TargetNotFound(TonieUploaderError):
    """Household or Creative-Tonie id could not be resolved."""
    def __init__(self, message: str, details: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            error_type="target_not_found",
            http_status=404,
            details=details,
            extra=extra,
        )


class StorageUploadFailed(TonieUploaderError):
    """Presigned storage POST was rejected or failed in transit."""
    def __init__(self, details: str):
        super().__init__(
            "Failed to upload file to storage",
            error_type="storage_upload_failed",
            http_status=500,
            details=details,
        )
