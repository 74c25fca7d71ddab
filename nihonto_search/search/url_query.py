"""
Nihonto Search — URL Query Detection

A pasted dealer URL is an identity lookup, not a fuzzy query. When the raw
query is (or contains) a URL, the browse pipeline skips status, price and
collectibility gating and matches the listing's source URL directly.

Recognised forms:
- http(s)://host/path
- www.host/path
- host/path, when host is a known dealer domain (or a subdomain of one)
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

import structlog

from nihonto_search.config import settings

logger = structlog.get_logger(__name__)

_SCHEME_RE = re.compile(r"https?://[^\s]+", re.IGNORECASE)
_WWW_RE = re.compile(r"(?<![\w.])www\.[^\s]+", re.IGNORECASE)
_HOST_RE = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$", re.IGNORECASE
)


def _match_key(url: str) -> str | None:
    """Reduce a URL to host + path + query, lowercased host, no scheme or www."""
    candidate = url if "://" in url else f"http://{url}"
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return None

    host = (parts.hostname or "").lower()
    if not _HOST_RE.match(host):
        return None
    if host.startswith("www."):
        host = host[4:]

    key = host + parts.path
    if parts.query:
        key += f"?{parts.query}"
    return key.rstrip("/")


def _is_known_host(host: str, known_domains: tuple[str, ...]) -> bool:
    host = host.lower()
    return any(host == domain or host.endswith(f".{domain}") for domain in known_domains)


def detect_url_query(
    raw_query: str | None,
    known_domains: tuple[str, ...] | None = None,
) -> str | None:
    """
    Return the URL match key for a pasted dealer URL, or None.

    Args:
        raw_query: The caller's free-text query.
        known_domains: Dealer hosts recognised without scheme or www prefix.
                       Defaults to settings.KNOWN_DEALER_DOMAINS.

    Returns:
        A lowercase-host substring such as "aoijapan.com/katana/12345",
        suitable for matching against Listing.url.

    Examples:
        >>> detect_url_query("https://www.aoijapan.com/katana-12345/")
        'aoijapan.com/katana-12345'
        >>> detect_url_query("bizen katana") is None
        True
    """
    if not raw_query or not raw_query.strip():
        return None

    domains = known_domains if known_domains is not None else settings.KNOWN_DEALER_DOMAINS
    text = raw_query.strip()

    match = _SCHEME_RE.search(text) or _WWW_RE.search(text)
    if match:
        key = _match_key(match.group(0))
        if key:
            logger.debug("url_query_detected", key=key, form="explicit", source="url_query")
        return key

    for token in text.split():
        host = token.split("/", 1)[0]
        if _HOST_RE.match(host) and _is_known_host(host, domains):
            key = _match_key(token)
            if key:
                logger.debug("url_query_detected", key=key, form="dealer_host", source="url_query")
                return key

    return None
