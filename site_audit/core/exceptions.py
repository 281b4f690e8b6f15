"""
Audit error taxonomy.

Every error the engine surfaces to a caller derives from AuditError and
carries the HTTP status the API answers with.
"""
from fastapi import status


class AuditError(Exception):
    """Base class for errors surfaced by the audit engine."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AuditError):
    """The submitted URL is malformed or targets a forbidden host."""

    status_code = status.HTTP_400_BAD_REQUEST
    reason = "InvalidFormat"


class InvalidUrlFormat(ValidationError):
    """URL could not be parsed."""

    reason = "InvalidFormat"

    def __init__(self, message: str = "Invalid URL format"):
        super().__init__(message)


class SchemeNotAllowed(ValidationError):
    """URL uses a scheme other than http or https."""

    reason = "SchemeNotAllowed"

    def __init__(self, message: str = "Only HTTP and HTTPS protocols are allowed"):
        super().__init__(message)


class PrivateTargetBlocked(ValidationError):
    """URL points at a loopback, private or link-local host."""

    reason = "PrivateTargetBlocked"

    def __init__(self, message: str = "Internal or private URLs are not allowed"):
        super().__init__(message)


class RateLimited(AuditError):
    """Caller exceeded its request budget for the current window."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(
        self,
        message: str = "Too many requests. Please try again later.",
        retry_after: int | None = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after


class FetchTimeout(AuditError):
    """Target site did not respond within the fetch budget."""

    status_code = status.HTTP_408_REQUEST_TIMEOUT

    def __init__(self, timeout: float):
        super().__init__(
            f"Request timeout. Site took too long to respond (>{timeout:g}s)."
        )
        self.timeout = timeout


class UpstreamError(AuditError):
    """Target site answered with a non-2xx status or could not be reached."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.upstream_status = upstream_status
