"""
sitemirror utilities module.
"""

from sitemirror.utils.config import Settings, get_default_site, get_settings
from sitemirror.utils.errors import (
    BrowserLaunchError,
    InvalidCliArgumentError,
    MalformedURLError,
    MirrorError,
    MirrorErrorCode,
    NavigationError,
    NavigationTimeoutError,
    classify_fetch_error,
)
from sitemirror.utils.logging import configure_logging, entry_page_context, get_logger

__all__ = [
    "Settings",
    "get_settings",
    "get_default_site",
    "MirrorError",
    "MirrorErrorCode",
    "InvalidCliArgumentError",
    "BrowserLaunchError",
    "NavigationError",
    "NavigationTimeoutError",
    "MalformedURLError",
    "classify_fetch_error",
    "configure_logging",
    "get_logger",
    "entry_page_context",
]
