"""
Core utilities for Site Audit.
"""
from site_audit.core.exceptions import (
    AuditError,
    ValidationError,
    InvalidUrlFormat,
    SchemeNotAllowed,
    PrivateTargetBlocked,
    RateLimited,
    FetchTimeout,
    UpstreamError,
)

__all__ = [
    "AuditError",
    "ValidationError",
    "InvalidUrlFormat",
    "SchemeNotAllowed",
    "PrivateTargetBlocked",
    "RateLimited",
    "FetchTimeout",
    "UpstreamError",
]
