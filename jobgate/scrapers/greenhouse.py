"""Greenhouse job board source (API tier).

Greenhouse provides a public JSON API at:
  https://boards-api.greenhouse.io/v1/boards/{board_token}/jobs

The API has no search parameter, so the board is fetched whole and
filtered locally on the query keywords (title and location).
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from jobgate.config import PipelineConfig, SourceConfig
from jobgate.models import JobListing, SearchQuery, SourceTier
from jobgate.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

API_BASE = "https://boards-api.greenhouse.io/v1/boards"


class GreenhouseScraper(BaseScraper):
    """Fetches listings from the Greenhouse public JSON API."""

    tier = SourceTier.API

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)
        self.board_token = source_config.params.get("board_token", "")
        self.company_name = source_config.company or self.board_token
        if not self.board_token:
            raise ValueError(
                f"Greenhouse source '{source_config.name}' requires "
                f"params.board_token in config"
            )

    def scrape(self, query: SearchQuery) -> list[JobListing]:
        logger.info(
            "[%s] Fetching Greenhouse board %s for %r",
            self.name, self.board_token, query.keywords,
        )

        url = f"{API_BASE}/{self.board_token}/jobs"
        try:
            resp = self._get(url, params={"content": "true"})
            raw_jobs = resp.json().get("jobs", [])
        except Exception as exc:
            logger.error("[%s] Failed to fetch Greenhouse API: %s", self.name, exc)
            return []

        jobs: list[JobListing] = []
        for raw in raw_jobs:
            job = self._parse_job(raw)
            if job and self._matches_keywords(f"{job.title} {job.location}", query):
                jobs.append(job)

        logger.info(
            "[%s] %d of %d board jobs match", self.name, len(jobs), len(raw_jobs)
        )
        return self._limit(jobs, query)

    def _parse_job(self, raw: dict) -> JobListing | None:
        """Convert one Greenhouse job object into a JobListing."""
        title = (raw.get("title") or "").strip()
        url = (raw.get("absolute_url") or "").strip()
        if not title or not url:
            return None

        location = raw.get("location") or {}
        location_name = location.get("name", "") if isinstance(location, dict) else ""

        content = raw.get("content") or ""
        description = self._html_to_text(content) if content else ""

        job_id = raw.get("id")

        return JobListing(
            title=title,
            company=self.company_name,
            url=url,
            source=f"greenhouse:{self.board_token}",
            location=location_name,
            description=description,
            platform_job_id=str(job_id) if job_id is not None else None,
            posted_date=raw.get("updated_at") or None,
            source_tier=self.tier.value,
        )

    @staticmethod
    def _html_to_text(html: str) -> str:
        # The API returns HTML-escaped HTML; parse twice to unescape then strip.
        unescaped = BeautifulSoup(html, "html.parser").get_text()
        soup = BeautifulSoup(unescaped, "html.parser")
        return soup.get_text(separator="\n", strip=True)
