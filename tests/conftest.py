"""
Pytest configuration and fixtures for Site Audit tests.
"""
import os
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

# Disable rate limiting for tests; rate limit tests switch it back on
os.environ["RATE_LIMIT_ENABLED"] = "false"

from site_audit.api.v1.audit import get_site_auditor
from site_audit.services import rate_limiter as rate_limiter_module
from site_audit.services.audit_engine import SiteAuditor
from tests.fixtures.sample_pages import (
    MALFORMED_HTML,
    MULTI_H1_HTML,
    PERFECT_PAGE_HTML,
    POOR_PAGE_HTML,
    ROBOTS_TXT,
    SITE_URL,
    SITEMAP_XML,
)


# ============================================================================
# Outbound HTTP Fixtures
# ============================================================================

def build_site_transport(routes: dict) -> httpx.MockTransport:
    """
    Mock transport serving a fixed set of URLs.

    Route values are (status, body), (status, body, headers) or a handler
    taking the request (sync or async). Unknown URLs answer 404.
    """
    async def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="Not Found")
        if callable(route):
            result = route(request)
            if not isinstance(result, httpx.Response):
                result = await result
            return result
        status_code, body, *rest = route
        headers = rest[0] if rest else {}
        return httpx.Response(status_code, text=body, headers=headers)

    return httpx.MockTransport(handler)


@pytest.fixture
def site_transport() -> Callable[[dict], httpx.MockTransport]:
    """Factory for mock transports, see build_site_transport."""
    return build_site_transport


@pytest.fixture
def perfect_site_routes() -> dict:
    """A well optimized https site with sitemap.xml and robots.txt."""
    return {
        SITE_URL: (200, PERFECT_PAGE_HTML, {"Content-Type": "text/html; charset=utf-8"}),
        f"{SITE_URL}sitemap.xml": (200, SITEMAP_XML),
        f"{SITE_URL}robots.txt": (200, ROBOTS_TXT),
    }


@pytest.fixture
def perfect_site_transport(perfect_site_routes) -> httpx.MockTransport:
    return build_site_transport(perfect_site_routes)


@pytest.fixture
def auditor(perfect_site_transport) -> SiteAuditor:
    """Auditor wired to the perfect site."""
    return SiteAuditor(transport=perfect_site_transport)


# ============================================================================
# HTML Fixtures
# ============================================================================

@pytest.fixture
def perfect_page_html() -> str:
    return PERFECT_PAGE_HTML


@pytest.fixture
def poor_page_html() -> str:
    return POOR_PAGE_HTML


@pytest.fixture
def multi_h1_html() -> str:
    return MULTI_H1_HTML


@pytest.fixture
def malformed_html() -> str:
    return MALFORMED_HTML


# ============================================================================
# Rate Limiter Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_rate_limiter(monkeypatch):
    """Every test starts without a global rate limiter."""
    monkeypatch.setattr(rate_limiter_module, "_rate_limiter", None)


@pytest.fixture
def fake_clock():
    """Controllable millisecond clock for the in-memory limiter."""
    class FakeClock:
        def __init__(self):
            self.now = 1_000_000.0

        def __call__(self) -> float:
            return self.now

        def advance(self, ms: float):
            self.now += ms

    return FakeClock()


@pytest.fixture
def mock_redis():
    """Mock Redis client for rate limiting tests."""
    pipeline = MagicMock()
    pipeline.execute = AsyncMock(return_value=[True, 1, 60000])

    mock = MagicMock()
    mock.pipeline = MagicMock(return_value=pipeline)
    mock.decr = AsyncMock(return_value=0)
    mock.close = AsyncMock()
    mock.pipe = pipeline
    return mock


# ============================================================================
# FastAPI App Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def app(auditor: SiteAuditor) -> FastAPI:
    """Create test FastAPI application."""
    from site_audit.main import app as main_app

    main_app.dependency_overrides[get_site_auditor] = lambda: auditor

    yield main_app

    main_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
