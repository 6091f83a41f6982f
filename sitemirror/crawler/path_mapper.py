"""
URL to mirror path mapping.

Both fetch paths (browser capture and direct download) compute destinations
here, so the mapping must stay a pure function of its arguments.

Layout:
    https://site.example/a/b.png        -> <mirror_root>/a/b.png
    https://site.example/docs/          -> <mirror_root>/docs/index.html
    https://cdn.other.example/lib.js    -> <mirror_root>/cdn.other.example/lib.js
"""

import posixpath
from pathlib import Path
from urllib.parse import unquote, urlsplit

from sitemirror.utils.errors import MalformedURLError

INDEX_FILENAME = "index.html"
SUPPORTED_SCHEMES = ("http", "https")


def hostname_of(url: str) -> str:
    """Return the lowercase hostname of an absolute http(s) URL.

    Raises:
        MalformedURLError: If the URL is not absolute http(s).
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError as e:
        raise MalformedURLError(f"Cannot parse URL: {url}", details={"url": url}) from e

    if parts.scheme.lower() not in SUPPORTED_SCHEMES or not hostname:
        raise MalformedURLError(f"Not an absolute http(s) URL: {url}", details={"url": url})
    return hostname.lower()


def _relative_file_path(raw_path: str) -> str:
    """Turn a URL path into a safe path relative to a mirror directory."""
    path = unquote(raw_path) or "/"
    if path.endswith("/"):
        path += INDEX_FILENAME

    # normpath on an absolute path collapses leading ".." at the root
    normalized = posixpath.normpath("/" + path.lstrip("/"))
    relative = normalized.lstrip("/")
    return relative or INDEX_FILENAME


def map_path(url: str, site_root: str, mirror_root: str | Path = "www") -> Path:
    """Map a resource URL to its file in the mirror.

    Args:
        url: Absolute resource URL.
        site_root: URL of the site being mirrored (defines "same site").
        mirror_root: Root directory of the mirror.

    Returns:
        Local file path. Same-site resources live directly under the mirror
        root, other hosts under a directory named after their hostname.

    Raises:
        MalformedURLError: If either URL is not absolute http(s).
    """
    host = hostname_of(url)
    site_host = hostname_of(site_root)
    relative = _relative_file_path(urlsplit(url).path)

    root = Path(mirror_root)
    if host == site_host:
        return root / relative
    return root / host / relative
