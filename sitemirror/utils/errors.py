"""
Error code definitions for sitemirror.

Only INVALID_CLI_ARGUMENT and BROWSER_LAUNCH_FAILED end a run. Every other
code degrades completeness of the mirror and is tracked by the failure count.

Error codes follow the pattern:
- INVALID_* / MALFORMED_*: Input validation errors
- NAVIGATION_*: Page-level browser errors
- FETCH_*: Per-URL download errors (retried)
- *_FAILED: Processing errors
"""

import errno
from enum import Enum
from typing import Any

import httpx


class MirrorErrorCode(str, Enum):
    """Error codes shared by logs and exceptions."""

    INVALID_CLI_ARGUMENT = "INVALID_CLI_ARGUMENT"
    """Site argument is not an http(s) URL. Fatal before any network activity."""

    BROWSER_LAUNCH_FAILED = "BROWSER_LAUNCH_FAILED"
    """Browser could not be started. Fatal."""

    NAVIGATION_TIMEOUT = "NAVIGATION_TIMEOUT"
    """Entry page did not reach load + network idle in time."""

    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    """Entry page navigation or DOM query failed."""

    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    FETCH_NETWORK_ERROR = "FETCH_NETWORK_ERROR"
    FETCH_HTTP_STATUS = "FETCH_HTTP_STATUS"
    FETCH_IO_ERROR = "FETCH_IO_ERROR"

    MALFORMED_URL = "MALFORMED_URL"
    """URL cannot be mapped into the mirror. Skipped, never fatal."""

    CAPTURE_FAILED = "CAPTURE_FAILED"
    """Browser response could not be persisted."""


class MirrorError(Exception):
    """Base exception for sitemirror errors."""

    code: MirrorErrorCode = MirrorErrorCode.NAVIGATION_FAILED

    def __init__(
        self,
        message: str,
        *,
        code: MirrorErrorCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary suitable for structured logs."""
        result: dict[str, Any] = {
            "error_code": self.code.value,
            "error": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidCliArgumentError(MirrorError):
    code = MirrorErrorCode.INVALID_CLI_ARGUMENT


class BrowserLaunchError(MirrorError):
    code = MirrorErrorCode.BROWSER_LAUNCH_FAILED


class NavigationError(MirrorError):
    code = MirrorErrorCode.NAVIGATION_FAILED


class NavigationTimeoutError(NavigationError):
    code = MirrorErrorCode.NAVIGATION_TIMEOUT


class MalformedURLError(MirrorError, ValueError):
    code = MirrorErrorCode.MALFORMED_URL


def classify_fetch_error(exc: BaseException) -> MirrorErrorCode:
    """Map an exception raised while downloading onto an error code.

    Args:
        exc: Exception raised by the fetch primitive.

    Returns:
        Matching error code.
    """
    if isinstance(exc, httpx.TimeoutException):
        return MirrorErrorCode.FETCH_TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return MirrorErrorCode.FETCH_HTTP_STATUS
    if isinstance(exc, httpx.HTTPError):
        return MirrorErrorCode.FETCH_NETWORK_ERROR
    if isinstance(exc, TimeoutError):
        return MirrorErrorCode.FETCH_TIMEOUT
    if isinstance(exc, OSError):
        if exc.errno in (errno.ECONNRESET, errno.ECONNREFUSED, errno.EHOSTUNREACH):
            return MirrorErrorCode.FETCH_NETWORK_ERROR
        return MirrorErrorCode.FETCH_IO_ERROR
    if isinstance(exc, MirrorError):
        return exc.code
    return MirrorErrorCode.FETCH_NETWORK_ERROR
