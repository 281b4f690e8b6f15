"""
URL Guard

Validates and normalizes user-submitted audit targets before any request
is made. Rejects non-HTTP schemes and hosts on loopback, private,
link-local and unique-local ranges (SSRF defense). Pure: no DNS lookups.
"""

import ipaddress
import logging
import re
import socket
from urllib.parse import urlsplit, urlunsplit

import httpx

from site_audit.core.exceptions import (
    InvalidUrlFormat,
    PrivateTargetBlocked,
    SchemeNotAllowed,
)

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}

# `name:` followed by a digit is a host:port, not a scheme
_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):(?!\d)")

# Hosts written in numeric forms that inet_aton accepts (2130706433, 0x7f.1, 127.1)
_NUMERIC_HOST_RE = re.compile(r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$")

BLOCKED_HOST_PATTERNS = [
    re.compile(r"^localhost$"),
    re.compile(r"^127\."),
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[0-1])\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^0\."),
    re.compile(r"^169\.254\."),
    re.compile(r"^::1$"),
    re.compile(r"^fc00:"),
    re.compile(r"^fd00:"),
    re.compile(r"^fe80:"),
    re.compile(r"\.internal$"),
    re.compile(r"\.local$"),
]

UNIQUE_LOCAL_V6 = ipaddress.IPv6Network("fc00::/7")


def _canonical_host(hostname: str) -> str:
    """Rewrite numeric IPv4 shorthands and IPv4-mapped IPv6 to dotted quads."""
    if _NUMERIC_HOST_RE.match(hostname):
        try:
            return str(ipaddress.IPv4Address(socket.inet_aton(hostname)))
        except OSError:
            return hostname

    if ":" in hostname:
        try:
            address = ipaddress.IPv6Address(hostname)
        except ValueError:
            return hostname
        if address.ipv4_mapped is not None:
            return str(address.ipv4_mapped)
        return address.compressed

    return hostname


def _is_blocked_ipv6(hostname: str) -> bool:
    try:
        address = ipaddress.IPv6Address(hostname)
    except ValueError:
        return False
    return (
        address.is_loopback
        or address.is_unspecified
        or address.is_link_local
        or address in UNIQUE_LOCAL_V6
    )


def is_blocked_host(hostname: str) -> bool:
    """Check a lower-cased hostname against the private target patterns."""
    candidates = {hostname, _canonical_host(hostname)}
    if any(_is_blocked_ipv6(candidate) for candidate in candidates):
        return True
    return any(
        pattern.search(candidate)
        for candidate in candidates
        for pattern in BLOCKED_HOST_PATTERNS
    )


def validate_url(raw: str) -> str:
    """
    Validate a candidate audit URL and return its normalized form.

    Args:
        raw: URL as typed by the user; the scheme may be omitted.

    Returns:
        Absolute URL with lower-cased scheme and host, a non-empty path
        and no fragment.

    Raises:
        InvalidUrlFormat: the input cannot be parsed as a URL.
        SchemeNotAllowed: the scheme is not http or https.
        PrivateTargetBlocked: the host is local, private or link-local.
    """
    candidate = (raw or "").strip()
    if not candidate:
        raise InvalidUrlFormat()

    if not _SCHEME_RE.match(candidate):
        candidate = f"https://{candidate}"

    if any(ch.isspace() for ch in candidate):
        raise InvalidUrlFormat()

    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        raise InvalidUrlFormat()

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise SchemeNotAllowed()

    if not hostname:
        raise InvalidUrlFormat()

    hostname = hostname.lower().rstrip(".")
    if not hostname:
        raise InvalidUrlFormat()

    if is_blocked_host(hostname):
        logger.warning(f"Blocked private audit target: {hostname}")
        raise PrivateTargetBlocked()

    netloc = f"[{hostname}]" if ":" in hostname else hostname
    if port is not None:
        netloc = f"{netloc}:{port}"
    if parts.username or parts.password:
        userinfo = parts.username or ""
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    normalized = urlunsplit((scheme, netloc, parts.path or "/", parts.query, ""))

    # Hosts the HTTP client cannot IDNA-encode (xn--.com, non-NFC labels)
    try:
        httpx.URL(normalized).host
    except (httpx.InvalidURL, ValueError):
        raise InvalidUrlFormat()

    return normalized
