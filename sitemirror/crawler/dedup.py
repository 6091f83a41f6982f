"""
Run-wide registry of claimed URLs.

The browser capture path and the direct-download path both consult one
registry so that a URL is fetched by at most one of them. One instance is
created per backup run and passed explicitly to every component.
"""

import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum

from sitemirror.utils.logging import get_logger

logger = get_logger(__name__)


class FetchOutcome(str, Enum):
    """Terminal outcome of a URL within one run."""

    CAPTURED = "captured"
    DOWNLOADED = "downloaded"
    SKIPPED_EXISTING = "skipped_existing"
    FAILED = "failed"


@dataclass
class FetchRecord:
    """A URL and its terminal outcome (None while still in progress)."""

    url: str
    outcome: FetchOutcome | None = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None


class DedupRegistry:
    """Concurrency-safe set of claimed URLs with per-URL fetch records.

    Claims are atomic check-and-set operations under a lock, so the registry
    is safe for asyncio tasks and OS threads alike.

    Example:
        registry = DedupRegistry()
        if registry.try_claim(url):
            try:
                await fetch(url)
                registry.record(url, FetchOutcome.DOWNLOADED)
            except httpx.HTTPError:
                registry.release(url)  # a later pass may reclaim it
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed: set[str] = set()
        self._records: dict[str, FetchRecord] = {}

    def try_claim(self, url: str) -> bool:
        """Claim a URL.

        Args:
            url: Absolute resource URL.

        Returns:
            True if the caller now owns the URL, False if it was already claimed.
        """
        with self._lock:
            if url in self._claimed:
                return False
            self._claimed.add(url)
            if url not in self._records:
                self._records[url] = FetchRecord(url=url)
            return True

    def release(self, url: str) -> None:
        """Drop a claim so a later retry pass can claim the URL again.

        The URL's record is kept; it simply stays non-terminal.
        """
        with self._lock:
            self._claimed.discard(url)
        logger.debug("Claim released", url=url)

    def record(self, url: str, outcome: FetchOutcome) -> FetchRecord:
        """Set the terminal outcome of a URL.

        Args:
            url: Absolute resource URL.
            outcome: Terminal outcome.

        Returns:
            The updated record.
        """
        with self._lock:
            fetch_record = self._records.get(url)
            if fetch_record is None:
                fetch_record = FetchRecord(url=url)
                self._records[url] = fetch_record
            fetch_record.outcome = outcome
            return fetch_record

    def is_claimed(self, url: str) -> bool:
        with self._lock:
            return url in self._claimed

    def get(self, url: str) -> FetchRecord | None:
        with self._lock:
            return self._records.get(url)

    def records(self) -> list[FetchRecord]:
        with self._lock:
            return list(self._records.values())

    def summary(self) -> dict[str, int]:
        """Count records per outcome (``pending`` for non-terminal ones)."""
        with self._lock:
            counts = Counter(
                r.outcome.value if r.outcome is not None else "pending"
                for r in self._records.values()
            )
        return dict(counts)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._claimed

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)
