"""
Audit schemas.
"""
from enum import Enum

from pydantic import BaseModel, Field

from site_audit.schemas.common import BaseSchema


class IssueCategory(str, Enum):
    """Issue severity bucket."""
    CRITICAL = "critical"
    WARNING = "warning"
    GOOD_TO_HAVE = "good-to-have"


class AuditRequest(BaseModel):
    """Audit request body."""

    url: str | None = Field(
        None,
        description="Page URL to audit; https:// is assumed when the scheme is omitted",
        examples=["https://example.com"],
    )


class SeoIssue(BaseSchema):
    """One finding produced by a scoring rule."""

    category: IssueCategory
    issue: str
    advice: str


class PerformanceDetails(BaseSchema):
    ttfb: int
    word_count: int
    internal_links: int
    external_links: int
    nofollow_links: int


class MetaDetails(BaseSchema):
    title: str
    description: str
    canonical: str | None = None
    robots: str
    viewport: str | None = None


class HeadingDetails(BaseSchema):
    h1: str
    h1_count: int
    h2_count: int


class ImageDetails(BaseSchema):
    total: int
    missing_alt: int


class SocialDetails(BaseSchema):
    og_title: str | None = None
    og_description: str | None = None
    og_image: str | None = None
    og_type: str | None = None
    og_url: str | None = None
    twitter_card: str | None = None
    twitter_title: str | None = None
    twitter_description: str | None = None
    twitter_image: str | None = None
    has_social_tags: bool


class SchemaDetails(BaseSchema):
    has_schema: bool
    schema_types: list[str]
    count: int


class TechnicalDetails(BaseSchema):
    has_sitemap: bool
    has_robots_txt: bool
    robots_txt_content: str | None = None


class SemanticDetails(BaseSchema):
    keyword_match: bool
    title_words: list[str]


class TechDetails(BaseSchema):
    generator: str


class AuditDetails(BaseSchema):
    performance: PerformanceDetails
    meta: MetaDetails
    headings: HeadingDetails
    images: ImageDetails
    social: SocialDetails
    structured_data: SchemaDetails = Field(alias="schema")
    technical: TechnicalDetails
    semantic: SemanticDetails
    tech: TechDetails
    issues: list[SeoIssue]


class AuditResult(BaseSchema):
    """Outcome of a single-page audit."""

    url: str
    score: int = Field(ge=0, le=100)
    is_https: bool
    details: AuditDetails
