"""
Pydantic schemas for the Site Audit API.
"""
from site_audit.schemas.common import (
    BaseSchema,
    HealthResponse,
    ErrorResponse,
)
from site_audit.schemas.audit import (
    IssueCategory,
    AuditRequest,
    SeoIssue,
    PerformanceDetails,
    MetaDetails,
    HeadingDetails,
    ImageDetails,
    SocialDetails,
    SchemaDetails,
    TechnicalDetails,
    SemanticDetails,
    TechDetails,
    AuditDetails,
    AuditResult,
)

__all__ = [
    # Common
    "BaseSchema",
    "HealthResponse",
    "ErrorResponse",
    # Audit
    "IssueCategory",
    "AuditRequest",
    "SeoIssue",
    "PerformanceDetails",
    "MetaDetails",
    "HeadingDetails",
    "ImageDetails",
    "SocialDetails",
    "SchemaDetails",
    "TechnicalDetails",
    "SemanticDetails",
    "TechDetails",
    "AuditDetails",
    "AuditResult",
]
