"""
Fact Extractor

Pulls SEO-relevant facts out of raw HTML with tolerant, tag-boundary
regexes instead of a DOM. Each fact has its own function so broken markup
in one part of a page only degrades that fact. Nothing here raises on bad
input: missing or malformed markup yields empty values.
"""

import html as html_lib
import json
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Any
from urllib.parse import urljoin, urlsplit

logger = logging.getLogger(__name__)

DEFAULT_ROBOTS = "index, follow"
DEFAULT_GENERATOR = "Unknown"
UNKNOWN_SCHEMA_TYPE = "Unknown"

EXCLUDED_LINK_SCHEMES = ("mailto:", "tel:", "javascript:")

_FLAGS = re.IGNORECASE | re.DOTALL

TITLE_RE = re.compile(r"<title\b[^>]*>(.*?)</title\s*>", _FLAGS)
H1_RE = re.compile(r"<h1\b[^>]*>(.*?)</h1\s*>", _FLAGS)
H2_OPEN_RE = re.compile(r"<h2\b[^>]*>", _FLAGS)
META_TAG_RE = re.compile(r"<meta\b[^>]*>", _FLAGS)
LINK_TAG_RE = re.compile(r"<link\b[^>]*>", _FLAGS)
IMG_TAG_RE = re.compile(r"<img\b[^>]*>", _FLAGS)
ANCHOR_TAG_RE = re.compile(r"<a\b[^>]*>", _FLAGS)
SCRIPT_RE = re.compile(r"<script\b([^>]*)>(.*?)</script\s*>", _FLAGS)
STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", _FLAGS)
COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
TAG_RE = re.compile(r"<[^>]*>")
WHITESPACE_RE = re.compile(r"\s+")

TAG_NAME_RE = re.compile(r"^<\s*[^\s/>]+")
ATTRIBUTE_RE = re.compile(
    r"""([^\s"'<>/=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+)))?"""
)


@dataclass(frozen=True)
class ImageStats:
    total: int = 0
    missing_alt: int = 0


@dataclass(frozen=True)
class LinkStats:
    internal: int = 0
    external: int = 0
    nofollow: int = 0


@dataclass(frozen=True)
class SocialTags:
    og_title: str | None = None
    og_description: str | None = None
    og_image: str | None = None
    og_type: str | None = None
    og_url: str | None = None
    twitter_card: str | None = None
    twitter_title: str | None = None
    twitter_description: str | None = None
    twitter_image: str | None = None

    @property
    def has_social_tags(self) -> bool:
        """Open Graph title, description and image are all present."""
        return bool(self.og_title and self.og_description and self.og_image)


@dataclass(frozen=True)
class SemanticCheck:
    keyword_match: bool = False
    title_words: tuple[str, ...] = ()


@dataclass(frozen=True)
class PageFacts:
    """Everything the scoring rules look at for one page."""

    title: str = ""
    description: str = ""
    canonical: str | None = None
    robots: str = DEFAULT_ROBOTS
    viewport: str | None = None
    h1s: tuple[str, ...] = ()
    h2_count: int = 0
    word_count: int = 0
    images: ImageStats = field(default_factory=ImageStats)
    links: LinkStats = field(default_factory=LinkStats)
    schema_count: int = 0
    schema_types: tuple[str, ...] = ()
    social: SocialTags = field(default_factory=SocialTags)
    generator: str = DEFAULT_GENERATOR
    semantic: SemanticCheck = field(default_factory=SemanticCheck)

    @property
    def h1(self) -> str:
        return self.h1s[0] if self.h1s else ""

    @property
    def h1_count(self) -> int:
        return len(self.h1s)

    @property
    def has_schema(self) -> bool:
        return self.schema_count > 0

    def to_dict(self) -> dict:
        return asdict(self)


# =========================================================================
# Text helpers
# =========================================================================

def decode_entities(text: str) -> str:
    """Decode HTML entities; non-breaking spaces become plain spaces."""
    return html_lib.unescape(text).replace("\xa0", " ")


def strip_tags(markup: str) -> str:
    return TAG_RE.sub(" ", markup)


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def parse_attributes(tag: str) -> dict[str, str]:
    """
    Parse the attributes of a single start tag.

    Names are lower-cased; the first occurrence of a repeated attribute
    wins. Valueless attributes map to an empty string.
    """
    inner = TAG_NAME_RE.sub("", tag, count=1).rstrip(">")
    attributes: dict[str, str] = {}
    for match in ATTRIBUTE_RE.finditer(inner):
        name = match.group(1).lower()
        if name in attributes:
            continue
        value = next((g for g in match.groups()[1:] if g is not None), "")
        attributes[name] = value
    return attributes


# =========================================================================
# Metadata
# =========================================================================

def extract_title(html: str) -> str:
    match = TITLE_RE.search(html)
    return decode_entities(match.group(1)).strip() if match else ""


def extract_meta_content(html: str, key: str, attribute: str = "name") -> str | None:
    """
    Content of the first <meta> whose `attribute` equals `key`.

    Args:
        html: Page markup
        key: Value to look for, compared case-insensitively (e.g. "og:title")
        attribute: "name" or "property"

    Returns:
        Decoded, trimmed content, or None when no such tag carries content.
    """
    wanted = key.lower()
    for tag in META_TAG_RE.findall(html):
        attributes = parse_attributes(tag)
        if attributes.get(attribute, "").strip().lower() != wanted:
            continue
        content = attributes.get("content")
        if content is None:
            continue
        return decode_entities(content).strip()
    return None


def extract_canonical(html: str) -> str | None:
    for tag in LINK_TAG_RE.findall(html):
        attributes = parse_attributes(tag)
        rel = attributes.get("rel", "").lower().split()
        if "canonical" in rel and attributes.get("href"):
            return decode_entities(attributes["href"]).strip()
    return None


def extract_generator(html: str) -> str:
    return extract_meta_content(html, "generator") or DEFAULT_GENERATOR


# =========================================================================
# Headings and body text
# =========================================================================

def extract_h1s(html: str) -> list[str]:
    """Text of every <h1> in document order, tags stripped."""
    return [
        collapse_whitespace(decode_entities(strip_tags(inner)))
        for inner in H1_RE.findall(html)
    ]


def count_h2(html: str) -> int:
    return len(H2_OPEN_RE.findall(html))


def extract_body_text(html: str) -> str:
    """Visible text of the document with scripts, styles and comments removed."""
    text = SCRIPT_RE.sub(" ", html)
    text = STYLE_RE.sub(" ", text)
    text = COMMENT_RE.sub(" ", text)
    text = strip_tags(text)
    return collapse_whitespace(decode_entities(text))


def count_words(text: str) -> int:
    return sum(1 for token in text.split(" ") if token)


# =========================================================================
# Images and links
# =========================================================================

def extract_image_stats(html: str) -> ImageStats:
    total = 0
    missing_alt = 0
    for tag in IMG_TAG_RE.findall(html):
        total += 1
        alt = parse_attributes(tag).get("alt")
        if alt is None or not alt.strip():
            missing_alt += 1
    return ImageStats(total=total, missing_alt=missing_alt)


def _hostname(url: str, base: str | None = None) -> str | None:
    try:
        if base is not None:
            url = urljoin(base, url)
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def extract_link_stats(html: str, page_url: str) -> LinkStats:
    """
    Count internal, external and nofollow anchors.

    mailto:, tel: and javascript: targets count toward neither internal
    nor external. Any anchor whose tag text mentions nofollow is counted
    as nofollow, whatever attribute carries it.
    """
    base_hostname = _hostname(page_url) or ""
    internal = external = nofollow = 0

    for tag in ANCHOR_TAG_RE.findall(html):
        href = parse_attributes(tag).get("href")
        if href is None:
            continue

        if "nofollow" in tag.lower():
            nofollow += 1

        href = decode_entities(href).strip()
        lowered = href.lower()

        if lowered.startswith(EXCLUDED_LINK_SCHEMES):
            continue

        if href.startswith("//") or lowered.startswith(("http://", "https://")):
            link_hostname = _hostname(href, base=page_url)
            if link_hostname is None:
                continue
            if link_hostname == base_hostname:
                internal += 1
            else:
                external += 1
        else:
            # Root-relative, fragment and bare relative paths
            internal += 1

    return LinkStats(internal=internal, external=external, nofollow=nofollow)


# =========================================================================
# Structured data
# =========================================================================

def extract_json_ld(html: str) -> list[Any]:
    """Parsed body of every JSON-LD script block; unparseable blocks are skipped."""
    blocks = []
    for attrs, body in SCRIPT_RE.findall(html):
        script_type = parse_attributes(f"<script{attrs}>").get("type", "")
        if script_type.strip().lower() != "application/ld+json":
            continue
        try:
            blocks.append(json.loads(body.strip()))
        except (ValueError, RecursionError):
            logger.debug("Skipping unparseable JSON-LD block")
            continue
    return blocks


def _node_types(node: Any) -> list[str]:
    if isinstance(node, list):
        return [t for item in node for t in _node_types(item)] or [UNKNOWN_SCHEMA_TYPE]
    if not isinstance(node, dict):
        return [UNKNOWN_SCHEMA_TYPE]

    declared = node.get("@type")
    if declared:
        if isinstance(declared, list):
            return [str(t) for t in declared if t] or [UNKNOWN_SCHEMA_TYPE]
        return [str(declared)]

    graph = node.get("@graph")
    if isinstance(graph, list) and graph:
        return _node_types(graph)

    return [UNKNOWN_SCHEMA_TYPE]


def extract_schema_types(blocks: list[Any]) -> list[str]:
    """Distinct @type values across JSON-LD blocks, in encounter order."""
    types: list[str] = []
    for block in blocks:
        try:
            block_types = _node_types(block)
        except RecursionError:
            block_types = [UNKNOWN_SCHEMA_TYPE]
        for schema_type in block_types:
            if schema_type not in types:
                types.append(schema_type)
    return types


# =========================================================================
# Social and semantic
# =========================================================================

def extract_social_tags(html: str) -> SocialTags:
    return SocialTags(
        og_title=extract_meta_content(html, "og:title", "property"),
        og_description=extract_meta_content(html, "og:description", "property"),
        og_image=extract_meta_content(html, "og:image", "property"),
        og_type=extract_meta_content(html, "og:type", "property"),
        og_url=extract_meta_content(html, "og:url", "property"),
        twitter_card=extract_meta_content(html, "twitter:card"),
        twitter_title=extract_meta_content(html, "twitter:title"),
        twitter_description=extract_meta_content(html, "twitter:description"),
        twitter_image=extract_meta_content(html, "twitter:image"),
    )


def check_semantic_match(title: str, h1: str) -> SemanticCheck:
    """Does a significant title word (longer than 3 chars) appear in the H1?"""
    title_words = [word for word in title.lower().split() if len(word) > 3]
    h1_words = set(h1.lower().split())
    return SemanticCheck(
        keyword_match=any(word in h1_words for word in title_words),
        title_words=tuple(title_words[:5]),
    )


def extract(html: str, page_url: str) -> PageFacts:
    """
    Extract all page facts from raw HTML.

    Args:
        html: Response body as text
        page_url: URL the body was served from, used to classify links

    Returns:
        PageFacts snapshot for the scoring engine
    """
    html = html or ""

    title = extract_title(html)
    h1s = extract_h1s(html)
    schemas = extract_json_ld(html)

    return PageFacts(
        title=title,
        description=extract_meta_content(html, "description") or "",
        canonical=extract_canonical(html),
        robots=extract_meta_content(html, "robots") or DEFAULT_ROBOTS,
        viewport=extract_meta_content(html, "viewport"),
        h1s=tuple(h1s),
        h2_count=count_h2(html),
        word_count=count_words(extract_body_text(html)),
        images=extract_image_stats(html),
        links=extract_link_stats(html, page_url),
        schema_count=len(schemas),
        schema_types=tuple(extract_schema_types(schemas)),
        social=extract_social_tags(html),
        generator=extract_generator(html),
        semantic=check_semantic_match(title, h1s[0] if h1s else ""),
    )
