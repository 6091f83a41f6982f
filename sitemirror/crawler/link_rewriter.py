"""
Link rewriting for captured HTML documents.

Two textual passes over the document:
- inline ``onclick="location.href='...'"`` targets become root-relative
  (path + query + fragment)
- ``<script src="...">`` references become root-relative; scripts from other
  hosts are prefixed with ``/<hostname>`` to match the mirror layout
"""

import re
from urllib.parse import SplitResult, urljoin, urlsplit

from sitemirror.crawler.path_mapper import SUPPORTED_SCHEMES
from sitemirror.utils.logging import get_logger

logger = get_logger(__name__)

LOCATION_HREF_PATTERN = re.compile(r"""(onclick="location\.href=')([^']+)(')""")
SCRIPT_SRC_PATTERN = re.compile(r"""(<script\ssrc=")([^"]+)(")""")


def _resolve(target: str, base_url: str) -> SplitResult | None:
    """Resolve a reference against the base URL, or None if it can't be rewritten."""
    try:
        resolved = urlsplit(urljoin(base_url, target.strip()))
    except ValueError:
        logger.debug("Unparseable link left untouched", target=target)
        return None
    if resolved.scheme.lower() not in SUPPORTED_SCHEMES or not resolved.hostname:
        return None
    return resolved


def _root_relative(parts: SplitResult) -> str:
    relative = parts.path or "/"
    if parts.query:
        relative += f"?{parts.query}"
    if parts.fragment:
        relative += f"#{parts.fragment}"
    return relative


def rewrite_location_links(html: str, base_url: str) -> str:
    """Rewrite inline location.href navigation targets to root-relative links."""

    def replace(match: re.Match[str]) -> str:
        pre, target, post = match.groups()
        resolved = _resolve(target, base_url)
        if resolved is None:
            return match.group(0)
        return pre + _root_relative(resolved) + post

    return LOCATION_HREF_PATTERN.sub(replace, html)


def rewrite_script_sources(html: str, base_url: str) -> str:
    """Rewrite script sources so they resolve inside the mirror."""
    base_host = (urlsplit(base_url).hostname or "").lower()

    def replace(match: re.Match[str]) -> str:
        pre, src, post = match.groups()
        resolved = _resolve(src, base_url)
        if resolved is None:
            return match.group(0)
        relative = _root_relative(resolved)
        host = (resolved.hostname or "").lower()
        if host == base_host:
            return pre + relative + post
        return pre + "/" + host + relative + post

    return SCRIPT_SRC_PATTERN.sub(replace, html)


def rewrite_document(html: str, base_url: str) -> str:
    """Rewrite absolute references in an HTML document for offline browsing.

    The two passes match disjoint patterns, so their order does not matter.
    Running the rewriter on its own output changes nothing.

    Args:
        html: Document text.
        base_url: URL of the mirrored site.

    Returns:
        Rewritten document text.
    """
    output = rewrite_location_links(html, base_url)
    return rewrite_script_sources(output, base_url)
