"""
Existence probes for well-known site resources (sitemap.xml, robots.txt).

Probes are best-effort enrichment: every failure is reported as
`exists=False` and never reaches the caller as an exception.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from urllib.parse import urljoin, urlsplit

import httpx

from site_audit.config import settings
from site_audit.core.exceptions import AuditError
from site_audit.services.fetcher import open_guarded, read_limited

logger = logging.getLogger(__name__)

SITEMAP_PATH = "/sitemap.xml"
ROBOTS_PATH = "/robots.txt"


@dataclass(frozen=True)
class ProbeResult:
    exists: bool
    content: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}/"


async def _probe(client: httpx.AsyncClient, url: str, max_chars: int) -> ProbeResult:
    response = await open_guarded(client, url)
    try:
        if not response.is_success:
            logger.debug(f"Probe {url}: status {response.status_code}")
            return ProbeResult(exists=False)
        # Roughly 4 bytes per char at worst for UTF-8
        content = await read_limited(response, max_chars * 4)
        return ProbeResult(exists=True, content=content[:max_chars])
    finally:
        await response.aclose()


async def probe_resource(
    client: httpx.AsyncClient,
    base_url: str,
    path: str,
    timeout: float | None = None,
) -> ProbeResult:
    """
    Check whether `path` exists on the origin of `base_url`.

    Args:
        client: HTTP client shared with the audit
        base_url: Any URL on the target site
        path: Absolute path such as "/robots.txt"
        timeout: Seconds before giving up, defaults to AUDIT_PROBE_TIMEOUT

    Returns:
        ProbeResult; `content` holds the (capped) body when it exists
    """
    timeout = timeout or settings.AUDIT_PROBE_TIMEOUT
    url = urljoin(origin_of(base_url), path)

    try:
        result = await asyncio.wait_for(
            _probe(client, url, settings.PROBE_MAX_CONTENT_CHARS), timeout
        )
    except asyncio.TimeoutError:
        logger.debug(f"Probe {url}: timed out after {timeout:g}s")
        return ProbeResult(exists=False)
    except (httpx.HTTPError, AuditError) as e:
        logger.debug(f"Probe {url}: {type(e).__name__}: {e}")
        return ProbeResult(exists=False)
    except Exception as e:
        # Cancellation is a BaseException and still propagates
        logger.warning(f"Probe {url}: unexpected {type(e).__name__}: {e}")
        return ProbeResult(exists=False)

    logger.debug(f"Probe {url}: exists={result.exists}")
    return result


async def probe_well_known(
    client: httpx.AsyncClient,
    base_url: str,
    timeout: float | None = None,
) -> tuple[ProbeResult, ProbeResult]:
    """Probe sitemap.xml and robots.txt concurrently. Returns (sitemap, robots)."""
    sitemap, robots = await asyncio.gather(
        probe_resource(client, base_url, SITEMAP_PATH, timeout),
        probe_resource(client, base_url, ROBOTS_PATH, timeout),
    )
    return sitemap, robots
