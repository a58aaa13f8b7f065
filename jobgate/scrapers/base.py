"""Abstract base class for the cheap-tier (RSS and API) sources."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import requests

from jobgate.config import PipelineConfig, SourceConfig
from jobgate.models import JobListing, SearchQuery, SourceTier

logger = logging.getLogger(__name__)


class BaseScraper(ABC):
    """Base class that every HTTP source adapter extends.

    Provides the shared requests session and a bounded-retry GET so each
    adapter only implements `scrape()`. Adapters catch their own transient
    errors and return an empty list; the orchestrator isolates anything
    that still escapes.
    """

    tier: SourceTier = SourceTier.API

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        self.source_config = source_config
        self.pipeline_config = pipeline_config
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": pipeline_config.user_agent})
        self.max_attempts = int(source_config.params.get("max_attempts", 2))
        self.retry_backoff_seconds = float(source_config.params.get("retry_backoff_seconds", 1.0))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @abstractmethod
    def scrape(self, query: SearchQuery) -> list[JobListing]:
        """Fetch and return the listings this source has for `query`."""
        ...

    @property
    def name(self) -> str:
        return self.source_config.name

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _get(self, url: str, **kwargs) -> requests.Response:
        """GET with a timeout and a small number of retries."""
        kwargs.setdefault("timeout", self.pipeline_config.request_timeout_seconds)
        attempts = max(1, self.max_attempts)

        for attempt in range(1, attempts + 1):
            try:
                resp = self.session.get(url, **kwargs)
                resp.raise_for_status()
                return resp
            except requests.RequestException as exc:
                logger.warning(
                    "[%s] GET %s attempt %d failed: %s", self.name, url, attempt, exc
                )
                if attempt == attempts:
                    raise
                time.sleep(self.retry_backoff_seconds * attempt)

        raise RuntimeError("Retry loop exited unexpectedly")

    def _limit(self, jobs: list[JobListing], query: SearchQuery) -> list[JobListing]:
        return jobs[: query.max_results] if query.max_results > 0 else jobs

    @staticmethod
    def _matches_keywords(text: str, query: SearchQuery) -> bool:
        """True if every query keyword appears in `text` (case-insensitive)."""
        words = [w for w in query.keywords.lower().split() if w]
        haystack = text.lower()
        return all(w in haystack for w in words)
