"""
Single-page SEO audit.

Pipeline:
1. Validate the URL (fail fast, nothing is fetched for a rejected target)
2. Fetch the page under one wall-clock budget, measuring TTFB
3. Extract page facts from the raw HTML
4. Probe sitemap.xml and robots.txt concurrently
5. Score the facts and assemble the AuditResult
"""

import asyncio
import logging
import time
from urllib.parse import urlsplit

import httpx

from site_audit.config import settings
from site_audit.core.exceptions import AuditError
from site_audit.schemas.audit import (
    AuditDetails,
    AuditResult,
    HeadingDetails,
    ImageDetails,
    MetaDetails,
    PerformanceDetails,
    SchemaDetails,
    SemanticDetails,
    SocialDetails,
    TechDetails,
    TechnicalDetails,
)
from site_audit.services.fact_extractor import PageFacts, extract
from site_audit.services.fetcher import fetch_page
from site_audit.services.resource_probe import ProbeResult, probe_well_known
from site_audit.services.scoring import ScoreResult, score
from site_audit.services.url_guard import validate_url

logger = logging.getLogger(__name__)


def build_result(
    url: str,
    ttfb_ms: int,
    facts: PageFacts,
    sitemap: ProbeResult,
    robots: ProbeResult,
    scored: ScoreResult,
) -> AuditResult:
    """Assemble the public result from the pipeline's intermediate values."""
    social = facts.social
    return AuditResult(
        url=url,
        score=scored.score,
        is_https=urlsplit(url).scheme == "https",
        details=AuditDetails(
            performance=PerformanceDetails(
                ttfb=ttfb_ms,
                word_count=facts.word_count,
                internal_links=facts.links.internal,
                external_links=facts.links.external,
                nofollow_links=facts.links.nofollow,
            ),
            meta=MetaDetails(
                title=facts.title,
                description=facts.description,
                canonical=facts.canonical,
                robots=facts.robots,
                viewport=facts.viewport,
            ),
            headings=HeadingDetails(
                h1=facts.h1,
                h1_count=facts.h1_count,
                h2_count=facts.h2_count,
            ),
            images=ImageDetails(
                total=facts.images.total,
                missing_alt=facts.images.missing_alt,
            ),
            social=SocialDetails(
                og_title=social.og_title,
                og_description=social.og_description,
                og_image=social.og_image,
                og_type=social.og_type,
                og_url=social.og_url,
                twitter_card=social.twitter_card,
                twitter_title=social.twitter_title,
                twitter_description=social.twitter_description,
                twitter_image=social.twitter_image,
                has_social_tags=social.has_social_tags,
            ),
            structured_data=SchemaDetails(
                has_schema=facts.has_schema,
                schema_types=list(facts.schema_types),
                count=facts.schema_count,
            ),
            technical=TechnicalDetails(
                has_sitemap=sitemap.exists,
                has_robots_txt=robots.exists,
                robots_txt_content=robots.content,
            ),
            semantic=SemanticDetails(
                keyword_match=facts.semantic.keyword_match,
                title_words=list(facts.semantic.title_words),
            ),
            tech=TechDetails(generator=facts.generator),
            issues=scored.issues,
        ),
    )


class SiteAuditor:
    """Runs audits. One instance can serve any number of concurrent audits."""

    def __init__(
        self,
        fetch_timeout: float | None = None,
        probe_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.fetch_timeout = fetch_timeout or settings.AUDIT_FETCH_TIMEOUT
        self.probe_timeout = probe_timeout or settings.AUDIT_PROBE_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        # Redirects are followed by the fetcher so each hop can be validated.
        # Phase timeouts match the fetch budget; probes have their own wait_for.
        return httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=False,
            timeout=httpx.Timeout(self.fetch_timeout),
        )

    async def run_audit(self, raw_url: str) -> AuditResult:
        """
        Audit one page.

        Args:
            raw_url: URL as submitted by the user

        Returns:
            AuditResult for the final URL after redirects

        Raises:
            ValidationError: URL malformed or forbidden (before any request)
            FetchTimeout: page did not load within the fetch budget
            UpstreamError: non-2xx status or transport failure
        """
        url = validate_url(raw_url)
        started = time.perf_counter()
        logger.info(f"Starting audit of {url}")

        try:
            async with self._client() as client:
                page = await fetch_page(client, url, timeout=self.fetch_timeout)
                facts = await asyncio.to_thread(extract, page.html, page.url)
                sitemap, robots = await probe_well_known(
                    client, page.url, timeout=self.probe_timeout
                )
        except AuditError as e:
            logger.warning(f"Audit of {url} failed: {type(e).__name__}: {e.message}")
            raise

        scored = score(
            facts,
            ttfb_ms=page.ttfb_ms,
            is_https=urlsplit(page.url).scheme == "https",
            sitemap=sitemap,
            robots=robots,
        )
        result = build_result(page.url, page.ttfb_ms, facts, sitemap, robots, scored)

        elapsed = time.perf_counter() - started
        logger.info(
            f"Audit of {page.url} complete: score {result.score}, "
            f"{len(scored.issues)} issues, {elapsed:.2f}s"
        )
        return result


async def run_audit(url: str) -> AuditResult:
    """Audit `url` with default settings."""
    return await SiteAuditor().run_audit(url)
