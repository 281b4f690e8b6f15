"""
API v1 router aggregating all endpoints.
"""
from fastapi import APIRouter

from site_audit.api.v1.audit import router as audit_router

api_router = APIRouter()

api_router.include_router(audit_router)
