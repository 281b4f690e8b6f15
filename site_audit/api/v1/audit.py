"""
Audit API Endpoint

Runs a synchronous single-page SEO audit and returns the scored result.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends

from site_audit.core.exceptions import InvalidUrlFormat
from site_audit.schemas.audit import AuditRequest, AuditResult
from site_audit.schemas.common import ErrorResponse
from site_audit.services.audit_engine import SiteAuditor


router = APIRouter(prefix="/audit", tags=["Audit"])

URL_REQUIRED = "URL is required"


@lru_cache
def get_site_auditor() -> SiteAuditor:
    """Shared auditor; overridden in tests."""
    return SiteAuditor()


@router.post(
    "",
    response_model=AuditResult,
    summary="Audit a single page",
    description="""
    Fetch one page and score it out of 100.

    The response lists every issue found, bucketed as critical, warning
    or good-to-have, together with the raw facts the score is based on.
    """,
    responses={
        400: {"model": ErrorResponse, "description": "Missing, malformed or forbidden URL"},
        408: {"model": ErrorResponse, "description": "Target site timed out"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        502: {"model": ErrorResponse, "description": "Target site returned an error"},
    },
)
async def run_audit(
    request: AuditRequest,
    auditor: Annotated[SiteAuditor, Depends(get_site_auditor)],
) -> AuditResult:
    """Audit the submitted URL."""
    if not request.url or not request.url.strip():
        raise InvalidUrlFormat(URL_REQUIRED)

    return await auditor.run_audit(request.url)
