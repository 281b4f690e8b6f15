"""
Weighted SEO scoring.

A page starts at 100 points. Each rule in SCORING_RULES that triggers
deducts its points and contributes exactly one issue. Rules are evaluated
in table order against the same facts and never depend on each other.

Weights:
- critical: 30
- warning: 15
- good-to-have: 10 (5 for sitemap, robots.txt and nofollow)
"""

import logging
from dataclasses import dataclass
from typing import Callable

from site_audit.schemas.audit import IssueCategory, SeoIssue
from site_audit.services.fact_extractor import PageFacts
from site_audit.services.resource_probe import ProbeResult

logger = logging.getLogger(__name__)

BASE_SCORE = 100
MAX_TITLE_LENGTH = 60
SLOW_TTFB_MS = 600
THIN_CONTENT_WORDS = 300

CATEGORY_POINTS = {
    IssueCategory.CRITICAL: 30,
    IssueCategory.WARNING: 15,
    IssueCategory.GOOD_TO_HAVE: 10,
}
MINOR_POINTS = 5


@dataclass(frozen=True)
class ScoringContext:
    """Inputs shared by every rule."""
    facts: PageFacts
    ttfb_ms: int
    is_https: bool
    sitemap: ProbeResult | None = None
    robots: ProbeResult | None = None


@dataclass(frozen=True)
class ScoringRule:
    rule_id: int
    category: IssueCategory
    points: int
    triggered: Callable[[ScoringContext], bool]
    label: Callable[[ScoringContext], str]
    advice: str
    # Rules that need optional inputs are skipped when those are absent
    applies: Callable[[ScoringContext], bool] = lambda ctx: True

    def evaluate(self, ctx: ScoringContext) -> SeoIssue | None:
        if not self.applies(ctx) or not self.triggered(ctx):
            return None
        return SeoIssue(category=self.category, issue=self.label(ctx), advice=self.advice)


@dataclass(frozen=True)
class ScoreResult:
    score: int
    issues: list[SeoIssue]


def _images_label(ctx: ScoringContext) -> str:
    missing = ctx.facts.images.missing_alt
    return f"{missing} Image{'s' if missing > 1 else ''} Missing Alt Text"


SCORING_RULES: list[ScoringRule] = [
    # Critical
    ScoringRule(
        rule_id=1,
        category=IssueCategory.CRITICAL,
        points=CATEGORY_POINTS[IssueCategory.CRITICAL],
        triggered=lambda ctx: ctx.facts.h1_count != 1,
        label=lambda ctx: f"H1 Tag Error (Found {ctx.facts.h1_count}, need exactly 1)",
        advice="Add a single, descriptive H1 tag at the top of your page with your primary keyword.",
    ),
    ScoringRule(
        rule_id=2,
        category=IssueCategory.CRITICAL,
        points=CATEGORY_POINTS[IssueCategory.CRITICAL],
        triggered=lambda ctx: not ctx.facts.viewport,
        label=lambda ctx: "Not Mobile Friendly (No Viewport Meta Tag)",
        advice='Add <meta name="viewport" content="width=device-width, initial-scale=1"> to your <head> section.',
    ),
    ScoringRule(
        rule_id=3,
        category=IssueCategory.CRITICAL,
        points=CATEGORY_POINTS[IssueCategory.CRITICAL],
        triggered=lambda ctx: not ctx.is_https,
        label=lambda ctx: "Not Secure (No HTTPS)",
        advice="Install an SSL certificate and redirect all HTTP traffic to HTTPS for security and SEO.",
    ),
    # Warnings
    ScoringRule(
        rule_id=4,
        category=IssueCategory.WARNING,
        points=CATEGORY_POINTS[IssueCategory.WARNING],
        triggered=lambda ctx: ctx.ttfb_ms > SLOW_TTFB_MS,
        label=lambda ctx: f"Slow Server Response ({ctx.ttfb_ms}ms TTFB)",
        advice="Optimize your server, enable caching, use a CDN, or upgrade hosting to reduce load time.",
    ),
    ScoringRule(
        rule_id=5,
        category=IssueCategory.WARNING,
        points=CATEGORY_POINTS[IssueCategory.WARNING],
        triggered=lambda ctx: not ctx.facts.title or len(ctx.facts.title) > MAX_TITLE_LENGTH,
        label=lambda ctx: "Title Too Long (>60 chars)" if ctx.facts.title else "Missing Title Tag",
        advice="Write a compelling title between 50-60 characters with your primary keyword near the beginning.",
    ),
    ScoringRule(
        rule_id=6,
        category=IssueCategory.WARNING,
        points=CATEGORY_POINTS[IssueCategory.WARNING],
        triggered=lambda ctx: not ctx.facts.description,
        label=lambda ctx: "Missing Meta Description",
        advice="Add a meta description (150-160 chars) that summarizes your page and includes target keywords.",
    ),
    ScoringRule(
        rule_id=7,
        category=IssueCategory.WARNING,
        points=CATEGORY_POINTS[IssueCategory.WARNING],
        triggered=lambda ctx: ctx.facts.images.missing_alt > 0,
        label=_images_label,
        advice="Add descriptive alt text to all images for accessibility and SEO benefits.",
    ),
    ScoringRule(
        rule_id=8,
        category=IssueCategory.WARNING,
        points=CATEGORY_POINTS[IssueCategory.WARNING],
        triggered=lambda ctx: ctx.facts.word_count < THIN_CONTENT_WORDS,
        label=lambda ctx: f"Thin Content ({ctx.facts.word_count} words)",
        advice="Expand your content to at least 300-500 words with valuable, keyword-rich information.",
    ),
    # Good to have
    ScoringRule(
        rule_id=9,
        category=IssueCategory.GOOD_TO_HAVE,
        points=CATEGORY_POINTS[IssueCategory.GOOD_TO_HAVE],
        triggered=lambda ctx: not ctx.facts.social.has_social_tags,
        label=lambda ctx: "Missing Open Graph Tags",
        advice="Add og:title, og:description, and og:image meta tags to control how your page appears when shared on social media.",
    ),
    ScoringRule(
        rule_id=10,
        category=IssueCategory.GOOD_TO_HAVE,
        points=CATEGORY_POINTS[IssueCategory.GOOD_TO_HAVE],
        triggered=lambda ctx: not ctx.facts.has_schema,
        label=lambda ctx: "No Structured Data (Schema.org)",
        advice="Add JSON-LD structured data to help search engines understand your content and enable rich snippets.",
    ),
    ScoringRule(
        rule_id=11,
        category=IssueCategory.GOOD_TO_HAVE,
        points=CATEGORY_POINTS[IssueCategory.GOOD_TO_HAVE],
        triggered=lambda ctx: bool(
            ctx.facts.title and ctx.facts.h1 and not ctx.facts.semantic.keyword_match
        ),
        label=lambda ctx: "Low Keyword Relevance",
        advice="Ensure your main keyword from the title appears in the first H1 for better topical relevance.",
    ),
    ScoringRule(
        rule_id=12,
        category=IssueCategory.GOOD_TO_HAVE,
        points=MINOR_POINTS,
        applies=lambda ctx: ctx.sitemap is not None,
        triggered=lambda ctx: not ctx.sitemap.exists,
        label=lambda ctx: "No Sitemap Found",
        advice="Create a sitemap.xml file to help search engines discover and index all your pages efficiently.",
    ),
    ScoringRule(
        rule_id=13,
        category=IssueCategory.GOOD_TO_HAVE,
        points=MINOR_POINTS,
        applies=lambda ctx: ctx.robots is not None,
        triggered=lambda ctx: not ctx.robots.exists,
        label=lambda ctx: "No robots.txt Found",
        advice="Add a robots.txt file to control how search engines crawl your site and point to your sitemap.",
    ),
    ScoringRule(
        rule_id=14,
        category=IssueCategory.GOOD_TO_HAVE,
        points=MINOR_POINTS,
        triggered=lambda ctx: ctx.facts.links.external > 0 and ctx.facts.links.nofollow == 0,
        label=lambda ctx: "No Nofollow Links on External Links",
        advice="Consider adding rel='nofollow' to external links you don't want to endorse to preserve link equity.",
    ),
]


def score(
    facts: PageFacts,
    ttfb_ms: int,
    is_https: bool,
    sitemap: ProbeResult | None = None,
    robots: ProbeResult | None = None,
) -> ScoreResult:
    """
    Score a page.

    Args:
        facts: Extracted page facts
        ttfb_ms: Time to first byte in milliseconds
        is_https: Whether the audited URL uses https
        sitemap: sitemap.xml probe; the sitemap rule is skipped when None
        robots: robots.txt probe; the robots rule is skipped when None

    Returns:
        ScoreResult with the clamped score and issues in rule order
    """
    ctx = ScoringContext(
        facts=facts,
        ttfb_ms=ttfb_ms,
        is_https=is_https,
        sitemap=sitemap,
        robots=robots,
    )

    deductions = 0
    issues: list[SeoIssue] = []
    for rule in SCORING_RULES:
        issue = rule.evaluate(ctx)
        if issue is not None:
            deductions += rule.points
            issues.append(issue)

    total = max(0, BASE_SCORE - deductions)
    logger.debug(f"Scored {total} with {len(issues)} issues ({deductions} points deducted)")
    return ScoreResult(score=total, issues=issues)
