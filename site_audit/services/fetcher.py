"""
Guarded HTTP fetching for audits.

All outbound requests go through `open_guarded`, which follows redirects
by hand so every hop is re-validated by the URL guard before it is
requested. `fetch_page` adds the wall-clock budget and TTFB measurement
used by the audit.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx

from site_audit.config import settings
from site_audit.core.exceptions import (
    FetchTimeout,
    InvalidUrlFormat,
    UpstreamError,
    ValidationError,
)
from site_audit.services.url_guard import validate_url

logger = logging.getLogger(__name__)

INVALID_REDIRECT = "Failed to fetch: invalid redirect location"

# Small fixed pool of current desktop browsers
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
]


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


@dataclass
class FetchedPage:
    url: str  # final URL after redirects
    status_code: int
    html: str
    ttfb_ms: int


async def open_guarded(
    client: httpx.AsyncClient,
    url: str,
    max_redirects: int | None = None,
) -> httpx.Response:
    """
    Send a streaming GET, following redirects only to validated targets.

    Args:
        client: Client to send with (must not follow redirects itself)
        url: Already validated absolute URL
        max_redirects: Hop limit, defaults to AUDIT_MAX_REDIRECTS

    Returns:
        Open streaming response for the final hop. Caller must close it.

    Raises:
        ValidationError: a redirect points at a forbidden target
        UpstreamError: too many redirects or an unparseable Location
        httpx.HTTPError: transport failures
    """
    max_redirects = settings.AUDIT_MAX_REDIRECTS if max_redirects is None else max_redirects
    current = url

    for hop in range(max_redirects + 1):
        request = client.build_request(
            "GET", current, headers={"User-Agent": random_user_agent()}
        )
        try:
            response = await client.send(request, stream=True, follow_redirects=False)
        except (httpx.InvalidURL, UnicodeError):
            # httpx parses the Location header even when not following it
            logger.warning(f"Unparseable redirect from {current}")
            raise UpstreamError(INVALID_REDIRECT)

        if not response.is_redirect:
            return response

        location = response.headers.get("location", "")
        await response.aclose()

        try:
            next_url = urljoin(str(response.url), location)
        except ValueError:
            logger.warning(f"Unparseable redirect from {current}: {location!r}")
            raise UpstreamError(INVALID_REDIRECT)

        logger.debug(f"Redirect {hop + 1}: {current} -> {next_url}")
        try:
            current = validate_url(next_url)
        except InvalidUrlFormat:
            logger.warning(f"Unparseable redirect from {current}: {location!r}")
            raise UpstreamError(INVALID_REDIRECT)
        except ValidationError:
            logger.warning(f"Refusing redirect from {current} to {next_url}")
            raise

    raise UpstreamError(f"Failed to fetch: too many redirects (>{max_redirects})")


def _decode(body: bytes, encoding: str | None) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


async def read_limited(response: httpx.Response, max_bytes: int) -> str:
    """Read a streaming body as text, truncating past `max_bytes`."""
    chunks = []
    received = 0
    async for chunk in response.aiter_bytes():
        chunks.append(chunk)
        received += len(chunk)
        if received >= max_bytes:
            logger.info(f"Truncating body of {response.url} at {max_bytes} bytes")
            break
    return _decode(b"".join(chunks)[:max_bytes], response.encoding)


async def _fetch(
    client: httpx.AsyncClient,
    url: str,
    started: float,
    max_bytes: int,
) -> FetchedPage:
    response = await open_guarded(client, url)
    try:
        ttfb_ms = int((time.perf_counter() - started) * 1000)

        if not response.is_success:
            reason = response.reason_phrase or f"HTTP {response.status_code}"
            raise UpstreamError(
                f"Failed to fetch: {reason}",
                upstream_status=response.status_code,
            )

        html = await read_limited(response, max_bytes)
        return FetchedPage(
            url=str(response.url),
            status_code=response.status_code,
            html=html,
            ttfb_ms=ttfb_ms,
        )
    finally:
        await response.aclose()


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    timeout: float | None = None,
    max_bytes: int | None = None,
) -> FetchedPage:
    """
    Fetch an audit target within a wall-clock budget.

    TTFB is the time until the final response's headers arrive. The
    budget covers redirects and the body read; nothing is retried.

    Raises:
        FetchTimeout: the budget ran out
        UpstreamError: non-2xx status, redirect loop or transport failure
        ValidationError: a redirect points at a forbidden target
    """
    timeout = timeout or settings.AUDIT_FETCH_TIMEOUT
    max_bytes = max_bytes or settings.AUDIT_MAX_PAGE_BYTES
    started = time.perf_counter()

    try:
        return await asyncio.wait_for(_fetch(client, url, started, max_bytes), timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning(f"Fetch timed out after {timeout:g}s: {url}")
        raise FetchTimeout(timeout)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Fetch failed for {url}: {type(e).__name__}: {e}")
        raise UpstreamError(f"Failed to fetch: {type(e).__name__}")
