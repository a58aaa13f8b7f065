"""Remotive source (API tier).

Remotive exposes a public search API:
  https://remotive.com/api/remote-jobs?search=<keywords>&limit=<n>

Results can lag the website by up to a day.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from jobgate.config import PipelineConfig, SourceConfig
from jobgate.models import JobListing, SearchQuery, SourceTier
from jobgate.scrapers.base import BaseScraper

logger = logging.getLogger(__name__)

API_URL = "https://remotive.com/api/remote-jobs"


class RemotiveScraper(BaseScraper):
    tier = SourceTier.API

    def __init__(self, source_config: SourceConfig, pipeline_config: PipelineConfig):
        super().__init__(source_config, pipeline_config)
        self.api_url = source_config.url or API_URL
        self.category = source_config.params.get("category", "")

    def scrape(self, query: SearchQuery) -> list[JobListing]:
        params = {"search": query.keywords, "limit": query.max_results}
        if self.category:
            params["category"] = self.category

        try:
            resp = self._get(self.api_url, params=params)
            raw_jobs = resp.json().get("jobs", []) or []
        except Exception as exc:
            logger.error("[%s] Failed to fetch Remotive API: %s", self.name, exc)
            return []

        jobs = [job for job in (self._parse_job(raw) for raw in raw_jobs) if job]
        logger.info("[%s] API returned %d jobs", self.name, len(jobs))
        return self._limit(jobs, query)

    def _parse_job(self, raw: dict) -> JobListing | None:
        url = (raw.get("url") or "").strip()
        if not url:
            return None

        description_html = raw.get("description") or ""
        description = (
            BeautifulSoup(description_html, "html.parser").get_text(" ", strip=True)
            if description_html
            else ""
        )
        job_id = raw.get("id")

        return JobListing(
            title=(raw.get("title") or "").strip() or "(unknown)",
            company=(raw.get("company_name") or "").strip(),
            url=url,
            source="remotive",
            location=(raw.get("candidate_required_location") or "remote").strip(),
            description=description,
            platform_job_id=str(job_id) if job_id is not None else None,
            posted_date=raw.get("publication_date") or None,
            source_tier=self.tier.value,
        )
